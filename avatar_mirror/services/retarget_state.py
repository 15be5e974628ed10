"""
Latest-value-wins retarget state.

Holds the most recent converted pose for each modality. The Detection Bus
writes it, the Mesh Binder reads it once per render tick.

Each modality's value is an immutable record replaced by a single
reference assignment, so a reader sees either the previous complete value
or the new one, never a mix. Nothing ties the face, hand and body values
together: they may come from different frames.
"""

from typing import Mapping, Optional

from avatar_mirror.models.pose import BodyPose, FacePose, HandPose, RetargetSnapshot

HAND_SLOTS = 2


class RetargetState:
    """
    Shared state owned by the pipeline for the whole process lifetime.

    Created empty: until a modality's first detection completes, its fields
    stay absent (None) so the avatar is never snapped to a default pose.
    """

    def __init__(self):
        self._face: Optional[FacePose] = None
        self._hands: tuple[Optional[HandPose], Optional[HandPose]] = (None, None)
        self._body: Optional[BodyPose] = None
        self._face_writes = 0
        self._hands_writes = 0
        self._body_writes = 0

    def read(self) -> RetargetSnapshot:
        """Current values of all fields. Never blocks, never fails."""
        return RetargetSnapshot(
            face=self._face,
            hands=self._hands,
            body=self._body,
            face_writes=self._face_writes,
            hands_writes=self._hands_writes,
            body_writes=self._body_writes,
        )

    def write_face(self, pose: FacePose) -> None:
        """Replace head/neck/spine rotations and morph weights."""
        self._face = pose
        self._face_writes += 1

    def write_hands(self, poses: Mapping[int, HandPose]) -> None:
        """
        Merge reported hands into their slots.

        Slots not present in poses keep their previous value.
        """
        slots = list(self._hands)
        for index, pose in poses.items():
            if 0 <= index < HAND_SLOTS:
                slots[index] = pose
        self._hands = (slots[0], slots[1])
        self._hands_writes += 1

    def write_body(self, pose: BodyPose) -> None:
        """Replace the body-derived spine rotation."""
        self._body = pose
        self._body_writes += 1

    @property
    def has_face(self) -> bool:
        return self._face is not None
