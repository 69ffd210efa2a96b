import pytest

from invigilator.cfg import ClassifierConfig
from invigilator.engine import (
    BoundingBox,
    FaceCountSmoother,
    FrameDetection,
    ViolationClassifier,
    ViolationEvent,
    ViolationLog,
    classify,
    status_for,
)
from invigilator.utils.violations import ProctoringStatus, Severity, ViolationType

FRAME = (1280, 720)
CENTERED = BoundingBox(x=490, y=210, width=300, height=300)


def face(box=CENTERED, probability=0.95):
    return FrameDetection(
        face_count=1,
        bounding_boxes=(box,),
        is_valid_frame=True,
        probabilities=(probability,),
        frame_width=FRAME[0],
        frame_height=FRAME[1],
    )


def faces(n):
    return FrameDetection(
        face_count=n,
        bounding_boxes=tuple(CENTERED for _ in range(n)),
        is_valid_frame=True,
        probabilities=tuple(0.9 for _ in range(n)),
        frame_width=FRAME[0],
        frame_height=FRAME[1],
    )


@pytest.mark.parametrize("boxes,previous", [
    ((), None),
    ((), ViolationEvent.create(ViolationType.LOOKING_AWAY)),
    ((), ViolationEvent.create(ViolationType.MULTIPLE_FACES, 2)),
])
def test_no_face_is_always_violation(boxes, previous):
    result = classify(0, boxes, previous, frame_size=FRAME, probabilities=(0.1,))

    assert result.status == ProctoringStatus.VIOLATION
    assert result.violation_type == ViolationType.NO_FACE


@pytest.mark.parametrize("count", [2, 3, 7])
@pytest.mark.parametrize("box", [
    CENTERED,
    BoundingBox(x=0, y=0, width=10, height=10),
    BoundingBox(x=0, y=0, width=1200, height=700),
])
def test_multiple_faces_is_always_warning(count, box):
    result = classify(
        count,
        [box] * count,
        frame_size=FRAME,
        probabilities=[0.1] * count,
    )

    assert result.status == ProctoringStatus.WARNING
    assert result.violation_type == ViolationType.MULTIPLE_FACES
    assert result.violation.message == f"{count} faces detected"
    assert result.violation.severity == Severity.HIGH


def test_zero_faces_reports_no_face():
    result = classify(0, [])

    assert result.status == ProctoringStatus.VIOLATION
    assert result.violation.type == ViolationType.NO_FACE
    assert result.violation.message == "No face detected"


def test_two_faces_reports_multiple_faces():
    result = classify(2, [BoundingBox(0, 0, 50, 50), BoundingBox(900, 500, 300, 200)])

    assert result.status == ProctoringStatus.WARNING
    assert result.violation.type == ViolationType.MULTIPLE_FACES


def test_centered_face_is_normal():
    result = classify(1, [CENTERED], frame_size=FRAME, probabilities=[0.95])

    assert result.status == ProctoringStatus.NORMAL
    assert result.violation is None


def test_single_face_without_frame_size_is_normal():
    result = classify(1, [BoundingBox(0, 0, 5, 5)])

    assert result.status == ProctoringStatus.NORMAL


def test_small_face_is_too_far():
    box = BoundingBox(x=615, y=335, width=50, height=50)

    result = classify(1, [box], frame_size=FRAME)

    assert result.status == ProctoringStatus.VIOLATION
    assert result.violation_type == ViolationType.FACE_TOO_FAR


def test_large_face_is_too_close():
    box = BoundingBox(x=340, y=60, width=600, height=600)

    result = classify(1, [box], frame_size=FRAME)

    assert result.status == ProctoringStatus.VIOLATION
    assert result.violation_type == ViolationType.FACE_TOO_CLOSE


def test_off_center_face_is_looking_away():
    box = BoundingBox.from_corners((100, 100), (200, 220))

    result = classify(1, [box], frame_size=FRAME)

    assert result.status == ProctoringStatus.WARNING
    assert result.violation_type == ViolationType.LOOKING_AWAY
    assert result.violation.severity == Severity.MEDIUM


def test_low_confidence_is_poor_lighting():
    result = classify(1, [CENTERED], frame_size=FRAME, probabilities=[0.4])

    assert result.status == ProctoringStatus.WARNING
    assert result.violation_type == ViolationType.POOR_LIGHTING
    assert result.violation.confidence == 0.4


def test_geometry_takes_precedence_over_lighting():
    box = BoundingBox(x=615, y=335, width=50, height=50)

    result = classify(1, [box], frame_size=FRAME, probabilities=[0.1])

    assert result.violation_type == ViolationType.FACE_TOO_FAR


def test_thresholds_come_from_config():
    config = ClassifierConfig(min_face_size=50.0)

    result = classify(1, [CENTERED], frame_size=FRAME, config=config)

    assert result.violation_type == ViolationType.FACE_TOO_FAR


def test_unchanged_violation_is_reused():
    previous = classify(0, []).violation

    result = classify(0, [], previous)

    assert result.violation is previous


def test_changed_violation_is_replaced():
    previous = classify(0, []).violation

    result = classify(2, [CENTERED, CENTERED], previous)

    assert result.violation is not previous


def test_status_for():
    assert status_for(None) == ProctoringStatus.NORMAL
    assert status_for(ViolationEvent.create(ViolationType.FACE_TOO_CLOSE)) == ProctoringStatus.VIOLATION
    assert status_for(ViolationEvent.create(ViolationType.POOR_LIGHTING)) == ProctoringStatus.WARNING


# ============================================================================
# Face count smoothing
# ============================================================================

def test_smoother_passes_through_with_one_frame():
    smoother = FaceCountSmoother(1)

    assert [smoother(c) for c in (1, 0, 2, 1)] == [1, 0, 2, 1]


def test_smoother_takes_mode():
    smoother = FaceCountSmoother(3)

    assert smoother(1) == 1
    assert smoother(0) == 0
    assert smoother(1) == 1
    assert smoother(0) == 0


def test_smoother_tie_prefers_single_face():
    smoother = FaceCountSmoother(2)

    smoother(0)
    assert smoother(1) == 1
    assert smoother(2) == 1


# ============================================================================
# ViolationClassifier
# ============================================================================

def test_initial_state_is_normal():
    classifier = ViolationClassifier()

    assert classifier.status == ProctoringStatus.NORMAL
    assert classifier.latest_violation is None
    assert classifier.face_count == 0


def test_invalid_frame_counts_as_no_face():
    classifier = ViolationClassifier()

    result = classifier.update(FrameDetection.invalid())

    assert result.status == ProctoringStatus.VIOLATION
    assert classifier.latest_violation.type == ViolationType.NO_FACE


def test_status_follows_latest_detection():
    classifier = ViolationClassifier()

    classifier.update(faces(2))
    assert classifier.status == ProctoringStatus.WARNING

    classifier.update(face())
    assert classifier.status == ProctoringStatus.NORMAL
    assert classifier.latest_violation is None
    assert classifier.face_count == 1


def test_sink_receives_every_violation_without_cooldown():
    log = ViolationLog()
    classifier = ViolationClassifier(ClassifierConfig(violation_cooldown_ms=0), sink=log.append)

    for _ in range(3):
        classifier.update(FrameDetection.invalid())

    assert len(log) == 3


def test_sink_cooldown_limits_repeats():
    log = ViolationLog()
    classifier = ViolationClassifier(ClassifierConfig(violation_cooldown_ms=60_000), sink=log.append)

    classifier.update(FrameDetection.invalid())
    classifier.update(FrameDetection.invalid())
    classifier.update(faces(2))

    assert [e.type for e in log] == [ViolationType.NO_FACE, ViolationType.MULTIPLE_FACES]
    assert classifier.status == ProctoringStatus.WARNING


def test_debounce_holds_display_until_repeated():
    log = ViolationLog()
    config = ClassifierConfig(debounce_frames=3, violation_cooldown_ms=0)
    classifier = ViolationClassifier(config, sink=log.append)

    classifier.update(FrameDetection.invalid())
    classifier.update(FrameDetection.invalid())
    assert classifier.status == ProctoringStatus.NORMAL
    assert len(log) == 0

    classifier.update(FrameDetection.invalid())
    assert classifier.status == ProctoringStatus.VIOLATION
    assert len(log) == 1


def test_debounce_resets_on_flicker():
    config = ClassifierConfig(debounce_frames=2, violation_cooldown_ms=0)
    classifier = ViolationClassifier(config)

    classifier.update(face())
    classifier.update(face())
    classifier.update(FrameDetection.invalid())
    classifier.update(face())
    classifier.update(FrameDetection.invalid())

    assert classifier.status == ProctoringStatus.NORMAL


def test_listeners_are_notified_on_change():
    classifier = ViolationClassifier()
    statuses, counts, violations = [], [], []
    classifier.on_status_change(statuses.append)
    classifier.on_face_count_change(counts.append)
    classifier.on_violation(violations.append)

    classifier.update(FrameDetection.invalid())
    classifier.update(FrameDetection.invalid())
    classifier.update(face())

    assert statuses == [ProctoringStatus.VIOLATION, ProctoringStatus.NORMAL]
    assert counts == [1]
    assert [v.type if v else None for v in violations] == [ViolationType.NO_FACE, None]


def test_failing_listener_does_not_break_update():
    classifier = ViolationClassifier()

    def broken(_):
        raise RuntimeError("boom")

    classifier.on_status_change(broken)

    result = classifier.update(FrameDetection.invalid())

    assert result.status == ProctoringStatus.VIOLATION


def test_reset_returns_to_normal():
    classifier = ViolationClassifier()
    classifier.update(faces(3))

    classifier.reset()

    assert classifier.status == ProctoringStatus.NORMAL
    assert classifier.face_count == 0
