import unittest
from unittest import mock

from config import LooperConfig, QueueConfig
from looper import Looper, TrackFeatures
from timing_map import INTERVAL_TYPES, IntervalDescriptor, TimingMap, TimingMapError, build_static_intervals


class FakeScheduler:
    """Collects frame requests instead of running a real frame loop."""

    def __init__(self):
        self.requests = []

    def __call__(self, callback):
        self.requests.append(callback)


def small_config(**overrides):
    cfg = LooperConfig(static_interval_count=50)
    for key, value in overrides.items():
        setattr(cfg, key, value)
    return cfg


def two_segment_map():
    analysis = {
        'tatums': [{'start': 0, 'duration': 500}],
        'segments': [
            {'start': 0, 'duration': 1000, 'loudness_start': -30, 'loudness_max': -10, 'loudness_max_time': 200},
            {'start': 1000, 'duration': 1000, 'loudness_start': -20, 'loudness_max': -5, 'loudness_max_time': 100},
        ],
        'beats': [{'start': 0, 'duration': 1000}, {'start': 1000, 'duration': 1000}],
        'bars': [{'start': 0, 'duration': 4000}],
        'sections': [{'start': 0, 'duration': 8000}],
    }
    return TimingMap.from_analysis(analysis)


class TestLooperLifecycle(unittest.TestCase):
    def test_construction_activates_and_requests_first_frame(self):
        scheduler = FakeScheduler()
        looper = Looper(small_config(), scheduler=scheduler)

        self.assertTrue(looper.is_active)
        self.assertEqual(scheduler.requests, [looper.tick])
        self.assertIsNone(looper.beat)

    def test_default_queue_from_config(self):
        looper = Looper(small_config(volume_smoothing=7, volume_average=30,
                                     queues=[QueueConfig('flicker', 12, 2, 'max')]))

        volume = looper.queues.get('volume')
        self.assertEqual((volume.capacity, volume.smoothing, volume.mode), (30, 7, 'average'))
        flicker = looper.queues.get('flicker')
        self.assertEqual((flicker.capacity, flicker.smoothing, flicker.mode), (12, 2, 'max'))

    def test_static_map_built_from_base_duration(self):
        looper = Looper(small_config(static_interval_base_duration=500))
        self.assertEqual(looper.timing_map['beats'][1].start, 500.0)
        self.assertEqual(len(looper.timing_map['sections']), 50)
        self.assertEqual(looper.track_features, TrackFeatures())

    def test_injected_map_is_used(self):
        timing_map = two_segment_map()
        looper = Looper(small_config(), timing_map=timing_map)
        self.assertIs(looper.timing_map, timing_map)

    def test_plain_mapping_is_validated_into_a_timing_map(self):
        plain = {t: [IntervalDescriptor(0.0, 1000.0), IntervalDescriptor(1000.0, 1000.0)]
                 for t in INTERVAL_TYPES}
        looper = Looper(small_config(), timing_map=plain)

        self.assertIsInstance(looper.timing_map, TimingMap)
        looper.tick(1500.0)
        self.assertEqual(looper.beat.index, 1)
        self.assertEqual(looper.get_volume(), 0.0)

    def test_empty_mapping_is_rejected(self):
        with self.assertRaises(TimingMapError):
            Looper(small_config(), timing_map={})
        with self.assertRaises(TimingMapError):
            Looper(small_config(), timing_map=[IntervalDescriptor(0.0, 1.0)])


class TestLooperTick(unittest.TestCase):
    def setUp(self):
        self.scheduler = FakeScheduler()
        self.looper = Looper(small_config(), scheduler=self.scheduler)

    def test_tick_reschedules_every_frame(self):
        self.looper.tick(16.0)
        self.looper.tick(32.0)
        self.assertEqual(len(self.scheduler.requests), 3)

    def test_failed_frame_still_reschedules(self):
        with mock.patch.object(self.looper, 'set_active_intervals', side_effect=RuntimeError("bad frame")), \
                mock.patch("looper.log_event") as log_event_mock:
            self.looper.tick(16.0)

        self.assertEqual(len(self.scheduler.requests), 2)
        args, kwargs = log_event_mock.call_args
        self.assertEqual(args[:2], ("ERROR", "Looper"))
        self.assertIn("bad frame", kwargs["error"])

        self.looper.tick(32.0)
        self.assertEqual(len(self.scheduler.requests), 3)
        self.assertEqual(self.looper.beat.index, 0)

    def test_failed_resolution_still_samples_volume(self):
        with mock.patch.object(self.looper, 'set_active_intervals', side_effect=RuntimeError("bad frame")), \
                mock.patch("looper.log_event"):
            self.looper.tick(16.0)
        self.assertEqual(len(self.looper.queues.get('volume')), 3)

    def test_raising_hook_does_not_abort_the_frame(self):
        beats = []
        self.looper.on('tatum', lambda interval: 1 / 0)
        self.looper.on('tatum', lambda interval: beats.append(('tatum', interval.index)))
        self.looper.on('beat', lambda interval: beats.append(('beat', interval.index)))

        with mock.patch("looper.log_event") as log_event_mock:
            self.looper.tick(100.0)

        self.assertEqual(beats, [('tatum', 0), ('beat', 0)])
        self.assertEqual(self.looper.beat.index, 0)
        self.assertEqual(self.looper.section.index, 0)
        self.assertEqual(len(self.looper.queues.get('volume')), 3)
        self.assertEqual(len(self.scheduler.requests), 2)

        errors = [c for c in log_event_mock.call_args_list if c.args[0] == "ERROR"]
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].args[:3], ("ERROR", "Looper", "Hook failed"))
        self.assertEqual(errors[0].kwargs["hook"], "tatum")
        self.assertIn("ZeroDivisionError", errors[0].kwargs["error"])

    def test_raising_watcher_does_not_abort_the_frame(self):
        self.looper.watch('beats', lambda interval: 1 / 0)
        with mock.patch("reactive_store.log_event") as log_event_mock:
            self.looper.tick(100.0)

        self.assertEqual(self.looper.bar.index, 0)
        self.assertEqual(len(self.looper.queues.get('volume')), 3)
        args, kwargs = log_event_mock.call_args
        self.assertEqual(args[:3], ("ERROR", "Store", "Watcher failed"))
        self.assertEqual(kwargs["key"], "beats")

    def test_tick_resolves_every_granularity(self):
        self.looper.tick(4500.0)

        self.assertEqual(self.looper.track_progress, 4500.0)
        self.assertEqual(self.looper.beat.index, 2)
        self.assertEqual(self.looper.beat.elapsed, 500.0)
        self.assertEqual(self.looper.beat.progress, 0.25)
        self.assertEqual(self.looper.tatum.index, 4)
        self.assertEqual(self.looper.segment.index, 4)
        self.assertEqual(self.looper.bar.index, 0)
        self.assertEqual(self.looper.section.index, 0)
        self.assertIs(self.looper.get_interval('beat'), self.looper.beat)
        self.assertIs(self.looper.get_interval('beats'), self.looper.beat)

    def test_get_interval_unknown_type(self):
        with self.assertRaises(KeyError):
            self.looper.get_interval('measure')

    def test_active_interval_replaced_only_on_index_change(self):
        self.looper.tick(100.0)
        first = self.looper.beat
        self.looper.tick(900.0)
        self.assertIs(self.looper.beat, first)
        self.assertEqual(first.elapsed, 900.0)

        self.looper.tick(2100.0)
        self.assertIsNot(self.looper.beat, first)
        self.assertEqual(self.looper.beat.index, 1)

    def test_hooks_fire_once_per_transition_for_their_own_granularity(self):
        beats, bars = [], []
        self.looper.on('beat', beats.append)
        self.looper.on('bar', bars.append)

        for now in (100.0, 900.0, 2100.0, 2200.0, 4100.0):
            self.looper.tick(now)

        self.assertEqual([b.index for b in beats], [0, 1, 2])
        self.assertEqual([b.index for b in bars], [0])

    def test_on_unknown_hook(self):
        with self.assertRaises(KeyError):
            self.looper.on('measure', print)

    def test_watch_passthrough(self):
        seen = []
        self.looper.watch('sections', seen.append)
        self.looper.tick(10.0)
        self.looper.tick(20.0)
        self.assertEqual(len(seen), 1)
        self.assertEqual(seen[0].index, 0)

    def test_progress_past_end_stays_on_last_interval(self):
        self.looper.tick(1e9)
        self.assertEqual(self.looper.section.index, 49)
        self.assertGreater(self.looper.section.progress, 1.0)
        self.assertEqual(self.looper.get_volume(), 0.0)

    def test_sync_reanchors_progress(self):
        self.looper.tick(1000.0)
        self.looper.sync(now=1000.0, track_progress=20000.0)
        self.looper.tick(1500.0)
        self.assertEqual(self.looper.track_progress, 20500.0)
        self.assertEqual(self.looper.beat.index, 10)


class TestLooperVolume(unittest.TestCase):
    def test_volume_follows_active_segment(self):
        looper = Looper(small_config())
        looper.tick(250.0)
        # segment 0 is 1000 long, peaks at 500 from -30 to -25
        self.assertAlmostEqual(looper.get_volume(), -27.5)

    def test_every_queue_gets_the_same_sample(self):
        looper = Looper(small_config())
        looper.register_queue('fast', total_samples=5, smoothing=1, mode='max')
        looper.tick(250.0)

        volume_queue = looper.queues.get('volume')
        fast_queue = looper.queues.get('fast')
        self.assertAlmostEqual(volume_queue.values[0], -27.5)
        self.assertEqual(volume_queue.values[0], fast_queue.values[0])
        self.assertEqual(len(volume_queue), 3)
        self.assertEqual(len(fast_queue), 3)

    def test_sampler_called_once_per_tick(self):
        looper = Looper(small_config())
        looper.register_queue('a', total_samples=5, smoothing=1)
        looper.register_queue('b', total_samples=5, smoothing=1)
        with mock.patch("looper.sample_volume", return_value=-12.0) as sample_mock:
            looper.tick(10.0)
        self.assertEqual(sample_mock.call_count, 1)

    def test_volume_zero_on_last_segment(self):
        looper = Looper(small_config(), timing_map=two_segment_map())
        looper.tick(500.0)
        # second phase of segment 0: -10 -> -20 over 800
        self.assertAlmostEqual(looper.get_volume(), -10.0 + (-10.0) * (300.0 / 800.0))
        looper.tick(1500.0)
        self.assertEqual(looper.get_volume(), 0.0)
        self.assertEqual(looper.queues.get('volume').values[0], 0.0)

    def test_queue_lookup_and_reset(self):
        looper = Looper(small_config())
        self.assertIsNone(looper.get_volume_queue('missing'))

        looper.register_queue('breath', total_samples=10, smoothing=4)
        for now in (100.0, 200.0, 300.0):
            looper.tick(now)
        self.assertNotEqual(looper.queues.get('breath').values, [0.0, 1.0])

        looper.reset_volume_queues()
        breath = looper.queues.get('breath')
        self.assertEqual(breath.values, [0.0, 1.0])
        self.assertEqual(looper.get_volume_queue('breath'), 0.5)


class TestLooperLoad(unittest.TestCase):
    def test_load_swaps_map_and_resets_dynamics(self):
        looper = Looper(small_config())
        for now in (100.0, 5000.0, 9000.0):
            looper.tick(now)

        maps, beats = [], []
        looper.watch('timing_map', maps.append)
        looper.on('beat', beats.append)

        timing_map = two_segment_map()
        features = TrackFeatures(tempo=120.0, energy=0.9)
        looper.load(timing_map, now=9000.0, track_progress=1200.0, features=features)

        self.assertEqual(maps, [timing_map])
        self.assertIsNone(looper.beat)
        self.assertEqual(looper.queues.get('volume').values, [0.0, 1.0])
        self.assertEqual(looper.track_progress, 1200.0)
        self.assertIs(looper.track_features, features)

        looper.tick(9100.0)
        self.assertEqual(looper.track_progress, 1300.0)
        self.assertEqual(looper.beat.index, 1)
        self.assertEqual([b.index for b in beats], [1])

    def test_build_static_map_can_be_loaded(self):
        looper = Looper(small_config())
        looper.load(build_static_intervals(1000, count=20), now=0.0)
        looper.tick(2500.0)
        self.assertEqual(looper.beat.index, 2)

    def test_load_rejects_bad_map_and_keeps_current_one(self):
        looper = Looper(small_config())
        current = looper.timing_map
        with self.assertRaises(TimingMapError):
            looper.load({}, now=0.0)
        self.assertIs(looper.timing_map, current)

    def test_load_accepts_plain_mapping(self):
        looper = Looper(small_config())
        plain = {t: [IntervalDescriptor(0.0, 400.0), IntervalDescriptor(400.0, 400.0)]
                 for t in INTERVAL_TYPES}
        looper.load(plain, now=0.0)
        looper.tick(500.0)
        self.assertIsInstance(looper.timing_map, TimingMap)
        self.assertEqual(looper.beat.index, 1)


if __name__ == "__main__":
    unittest.main()
