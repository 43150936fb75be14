import pytest

from oral_relay.relay.silence import SilenceDetector, SilenceEvent, SilenceState, next_state


@pytest.mark.parametrize(
	"state,event,expected",
	[
		(SilenceState.IDLE, SilenceEvent.ARM, SilenceState.ARMED),
		(SilenceState.ARMED, SilenceEvent.ARM, SilenceState.ARMED),
		(SilenceState.ARMED, SilenceEvent.CANCEL, SilenceState.IDLE),
		(SilenceState.ARMED, SilenceEvent.ELAPSE, SilenceState.FIRED),
		(SilenceState.IDLE, SilenceEvent.ELAPSE, SilenceState.IDLE),
		(SilenceState.FIRED, SilenceEvent.ELAPSE, SilenceState.FIRED),
		(SilenceState.IDLE, SilenceEvent.FIRE, SilenceState.FIRED),
		(SilenceState.FIRED, SilenceEvent.ARM, SilenceState.ARMED),
		(SilenceState.FIRED, SilenceEvent.CANCEL, SilenceState.IDLE),
	],
)
def test_transitions(state, event, expected):
	assert next_state(state, event) is expected


class Counter:
	def __init__(self):
		self.count = 0

	def __call__(self):
		self.count += 1


def test_fires_once_after_quiet_window(scheduler):
	fired = Counter()
	det = SilenceDetector(scheduler, 1.0, fired)
	det.arm()
	assert det.state is SilenceState.ARMED
	scheduler.advance(0.99)
	assert fired.count == 0
	scheduler.advance(0.02)
	assert fired.count == 1
	assert det.state is SilenceState.FIRED
	scheduler.advance(5)
	assert fired.count == 1


def test_rearm_pushes_deadline_back(scheduler):
	fired = Counter()
	det = SilenceDetector(scheduler, 1.0, fired)
	for _ in range(5):
		det.arm()
		scheduler.advance(0.5)
	assert fired.count == 0
	# only one live timer at a time
	assert len(scheduler.pending()) == 1
	scheduler.advance(0.5)
	assert fired.count == 1


def test_cancel_before_fire_has_no_effect(scheduler):
	fired = Counter()
	det = SilenceDetector(scheduler, 1.0, fired)
	det.arm()
	det.cancel()
	assert det.state is SilenceState.IDLE
	scheduler.advance(10)
	assert fired.count == 0


def test_fire_now_cancels_pending_timer(scheduler):
	fired = Counter()
	det = SilenceDetector(scheduler, 1.0, fired)
	det.arm()
	det.fire_now()
	assert fired.count == 1
	assert det.state is SilenceState.FIRED
	scheduler.advance(10)
	assert fired.count == 1


def test_fire_now_without_arm_still_fires(scheduler):
	fired = Counter()
	det = SilenceDetector(scheduler, 1.0, fired)
	det.fire_now()
	assert fired.count == 1


def test_stale_callback_is_ignored(scheduler):
	fired = Counter()
	det = SilenceDetector(scheduler, 1.0, fired)
	det.arm()
	stale = scheduler.pending()[0]
	det.cancel()
	# a timer primitive that ignores cancel() must still not fire the detector
	stale.callback()
	assert fired.count == 0
