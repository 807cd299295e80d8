from typing import Literal, Optional, Sequence

from pydantic import Field

from pose_relay.applib.models.api import WireModel

# 33-point body topology produced by the capture side.
LANDMARK_NAMES = (
    'nose', 'left_eye_inner', 'left_eye', 'left_eye_outer',
    'right_eye_inner', 'right_eye', 'right_eye_outer', 'left_ear',
    'right_ear', 'mouth_left', 'mouth_right', 'left_shoulder',
    'right_shoulder', 'left_elbow', 'right_elbow', 'left_wrist',
    'right_wrist', 'left_pinky', 'right_pinky', 'left_index',
    'right_index', 'left_thumb', 'right_thumb', 'left_hip',
    'right_hip', 'left_knee', 'right_knee', 'left_ankle',
    'right_ankle', 'left_heel', 'right_heel', 'left_foot_index',
    'right_foot_index',
)


def landmark_name(index: int) -> str:
    if 0 <= index < len(LANDMARK_NAMES):
        return LANDMARK_NAMES[index]
    return f'landmark_{index}'


class Landmark(WireModel):
    id: int
    x: float
    y: float
    z: float
    visibility: float = Field(ge=0.0, le=1.0)
    name: Optional[str] = None


class PoseMetadata(WireModel):
    confidence: Optional[float] = None
    frame_rate: Optional[float] = None
    device_orientation: Optional[float] = None
    battery_level: Optional[float] = None


class PoseFrame(WireModel):
    """Outgoing pose_data envelope as produced by a capture peer."""
    type: Literal['pose_data'] = 'pose_data'
    timestamp: int
    landmarks: list[Landmark]
    metadata: Optional[PoseMetadata] = None

    @classmethod
    def from_points(
        cls,
        points: Sequence[tuple[float, float, float, float]],
        *,
        timestamp: int,
        frame_rate: Optional[float] = None,
    ) -> "PoseFrame":
        """Build a frame from (x, y, z, visibility) tuples, rounding to 3 places like the capture client."""
        landmarks = [
            Landmark(
                id=i,
                x=round(x, 3),
                y=round(y, 3),
                z=round(z, 3),
                visibility=round(min(max(v, 0.0), 1.0), 3),
                name=landmark_name(i),
            )
            for i, (x, y, z, v) in enumerate(points)
        ]
        return cls(
            timestamp=timestamp,
            landmarks=landmarks,
            metadata=PoseMetadata(confidence=average_confidence(landmarks), frame_rate=frame_rate),
        )


def average_confidence(landmarks: Sequence[Landmark], threshold: float = 0.5) -> float:
    """Mean visibility of the landmarks that clear `threshold`; 0 when none do."""
    visible = [lm.visibility for lm in landmarks if lm.visibility > threshold]
    if not visible:
        return 0.0
    return sum(visible) / len(visible)
