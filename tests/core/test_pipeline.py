"""Tests for the classification pipeline orchestrator."""

import numpy as np
import pytest

from genrescope.core.constants import StatusColors, StatusMessages
from genrescope.core.event_bus import EventBus, Events
from genrescope.core.pipeline import ClassificationPipeline, PipelineState
from melgrid.errors import (
    ClassifierUnavailableError,
    DecodeError,
    ExtractionError,
    InferenceError,
    LabelMismatchError,
    NoClipError,
)
from melgrid.types import AudioClip
from tests.stubs import StubClassifier


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def pipeline(qapp, test_config, event_bus, thread_pool):  # type: ignore
    """Provide a pipeline running extraction on a thread."""
    pipeline = ClassificationPipeline(test_config, event_bus=event_bus, pool=thread_pool)
    yield pipeline
    pipeline.shutdown()


@pytest.fixture
def ready_pipeline(pipeline, stub_classifier):  # type: ignore
    """Provide a pipeline with the stub classifier installed."""
    pipeline.set_classifier(stub_classifier)
    return pipeline


@pytest.fixture
def sine_clip(make_sine) -> AudioClip:  # type: ignore
    """Provide a 3 s 440 Hz clip at 44.1 kHz."""
    return AudioClip(make_sine(3.0, 44100), 44100, source="sine")


def wait_idle(qtbot, pipeline) -> None:  # type: ignore
    """Wait until every worker has finished and its signals were delivered."""
    qtbot.waitUntil(lambda: pipeline.active_workers == 0, timeout=10000)


class TestInitialState:
    """Test a fresh pipeline."""

    def test_starts_idle(self, pipeline) -> None:  # type: ignore
        assert pipeline.state == PipelineState.IDLE
        assert not pipeline.classifier_loaded
        assert pipeline.clip is None
        assert pipeline.result is None

    def test_engine_uses_configured_shape(self, pipeline) -> None:  # type: ignore
        assert pipeline.engine.input_shape == (1, 96, 64, 1)
        assert pipeline.labels[-1] == "rock"


class TestClassifierHandle:
    """Test installing and loading the classifier."""

    def test_set_classifier(self, qtbot, pipeline, event_bus, stub_classifier) -> None:  # type: ignore
        """Test installing a handle emits readiness."""
        statuses = []
        event_bus.subscribe(Events.STATUS_MESSAGE, lambda **d: statuses.append(d["message"]))

        with qtbot.waitSignal(pipeline.classifier_ready, timeout=1000):
            pipeline.set_classifier(stub_classifier)

        assert pipeline.classifier_loaded
        assert statuses == [StatusMessages.MODEL_READY]

    def test_handle_is_set_once(self, ready_pipeline, stub_classifier) -> None:  # type: ignore
        """Test the handle cannot be replaced."""
        with pytest.raises(RuntimeError):
            ready_pipeline.set_classifier(stub_classifier)
        assert ready_pipeline.load_classifier() is False

    def test_failed_load_then_later_success(  # type: ignore
        self, qtbot, pipeline, tmp_path, stub_classifier, sine_clip
    ) -> None:
        """Test a failed load is reported and a later load still works."""
        with qtbot.waitSignal(pipeline.failed, timeout=5000) as blocker:
            assert pipeline.load_classifier(tmp_path / "missing.pt")
        wait_idle(qtbot, pipeline)

        assert isinstance(blocker.args[0], ClassifierUnavailableError)
        assert not pipeline.classifier_loaded

        pipeline.load_clip(sine_clip)
        with pytest.raises(ClassifierUnavailableError, match="missing.pt"):
            pipeline.classify()
        assert pipeline.state == PipelineState.AUDIO_READY

        pipeline.set_classifier(stub_classifier)
        with qtbot.waitSignal(pipeline.results_ready, timeout=10000):
            pipeline.classify()
        assert pipeline.state == PipelineState.RESULTS_READY


class TestClassify:
    """Test classify()."""

    def test_without_classifier(self, pipeline, sine_clip, event_bus) -> None:  # type: ignore
        """Test classify fails fast and leaves the state alone."""
        statuses = []
        pipeline.load_clip(sine_clip)
        event_bus.subscribe(Events.STATUS_MESSAGE, lambda **d: statuses.append(d))

        with pytest.raises(ClassifierUnavailableError):
            pipeline.classify()

        assert pipeline.state == PipelineState.AUDIO_READY
        assert statuses == [{"message": StatusMessages.NOT_READY, "color": StatusColors.ERROR}]

    def test_without_clip(self, ready_pipeline) -> None:  # type: ignore
        """Test classify needs a clip."""
        with pytest.raises(NoClipError):
            ready_pipeline.classify()
        assert ready_pipeline.state == PipelineState.IDLE

    def test_produces_ranked_result(  # type: ignore
        self, qtbot, ready_pipeline, sine_clip, stub_classifier
    ) -> None:
        """Test a full pass ranks the stub scores."""
        states = []
        ready_pipeline.state_changed.connect(states.append)

        ready_pipeline.load_clip(sine_clip)
        with qtbot.waitSignal(ready_pipeline.results_ready, timeout=10000) as blocker:
            generation = ready_pipeline.classify()

        result = blocker.args[0]
        assert result.generation == generation
        assert result.predicted_genre == "rock"
        assert result.confidence == pytest.approx(90.0)
        assert len(result.top) == 5
        assert len(result.ranking) == 10
        assert result.duration == pytest.approx(3.0)
        assert result.source == "sine"
        assert ready_pipeline.result is result

        assert states == ["audio_ready", "extracting", "classifying", "results_ready"]
        assert stub_classifier.batches[0].shape == (1, 96, 64, 1)

    def test_status_and_events(  # type: ignore
        self, qtbot, ready_pipeline, sine_clip, event_bus
    ) -> None:
        """Test status messages and events follow the pipeline steps."""
        statuses = []
        started = []
        completed = []
        event_bus.subscribe(Events.STATUS_MESSAGE, lambda **d: statuses.append(d["message"]))
        event_bus.subscribe(Events.CLASSIFICATION_STARTED, lambda **d: started.append(d))
        event_bus.subscribe(Events.CLASSIFICATION_COMPLETE, lambda **d: completed.append(d))

        ready_pipeline.load_clip(sine_clip)
        with qtbot.waitSignal(ready_pipeline.results_ready, timeout=10000):
            generation = ready_pipeline.classify()

        assert statuses == [
            StatusMessages.AUDIO_READY,
            StatusMessages.EXTRACTING,
            StatusMessages.CLASSIFYING,
            StatusMessages.COMPLETE,
        ]
        assert started == [{"generation": generation}]
        assert completed[0]["result"].predicted_genre == "rock"

    def test_top_k_from_config(  # type: ignore
        self, qtbot, test_config, thread_pool, stub_classifier, sine_clip
    ) -> None:
        """Test the configured K bounds the top list."""
        test_config.results.top_k = 3
        pipeline = ClassificationPipeline(test_config, pool=thread_pool)
        pipeline.set_classifier(stub_classifier)
        pipeline.load_clip(sine_clip)

        with qtbot.waitSignal(pipeline.results_ready, timeout=10000) as blocker:
            pipeline.classify()
        pipeline.shutdown()

        assert [p.label for p in blocker.args[0].top] == ["rock", "blues", "classical"]


class TestFailures:
    """Test stage failures."""

    def test_extraction_failure_then_new_clip(  # type: ignore
        self, qtbot, ready_pipeline, sine_clip, event_bus
    ) -> None:
        """Test extraction failure moves to ERROR and a new clip recovers."""
        resets = []
        event_bus.subscribe(Events.RESULTS_RESET, lambda **d: resets.append(True))

        samples = np.zeros(22050, dtype=np.float32)
        samples[500] = np.nan
        ready_pipeline.load_clip(AudioClip(samples, 22050))

        with qtbot.waitSignal(ready_pipeline.failed, timeout=10000) as blocker:
            ready_pipeline.classify()

        assert isinstance(blocker.args[0], ExtractionError)
        assert ready_pipeline.state == PipelineState.ERROR
        assert ready_pipeline.result is None
        assert ready_pipeline.last_error is blocker.args[0]
        assert resets

        ready_pipeline.load_clip(sine_clip)
        assert ready_pipeline.state == PipelineState.AUDIO_READY
        assert ready_pipeline.last_error is None

        with qtbot.waitSignal(ready_pipeline.results_ready, timeout=10000):
            ready_pipeline.classify()
        assert ready_pipeline.state == PipelineState.RESULTS_READY

    def test_inference_failure(self, qtbot, pipeline, sine_clip) -> None:  # type: ignore
        """Test a raising classifier moves to ERROR."""

        class Broken:
            def predict(self, batch):  # type: ignore
                raise RuntimeError("out of memory")

        pipeline.set_classifier(Broken())
        pipeline.load_clip(sine_clip)

        with qtbot.waitSignal(pipeline.failed, timeout=10000) as blocker:
            pipeline.classify()

        assert isinstance(blocker.args[0], InferenceError)
        assert pipeline.state == PipelineState.ERROR

    def test_label_mismatch(self, qtbot, pipeline, sine_clip) -> None:  # type: ignore
        """Test a wrong-sized output is an inference failure."""
        pipeline.set_classifier(StubClassifier([0.5] * 8))
        pipeline.load_clip(sine_clip)

        with qtbot.waitSignal(pipeline.failed, timeout=10000) as blocker:
            pipeline.classify()

        assert isinstance(blocker.args[0], LabelMismatchError)
        assert pipeline.state == PipelineState.ERROR
        assert pipeline.result is None

    def test_nan_scores(self, qtbot, pipeline, sine_clip) -> None:  # type: ignore
        """Test NaN scores fail the request instead of producing a ranking."""
        pipeline.set_classifier(StubClassifier([0.1, np.nan] + [0.1] * 8))
        pipeline.load_clip(sine_clip)

        with qtbot.waitSignal(pipeline.failed, timeout=10000) as blocker:
            pipeline.classify()

        assert isinstance(blocker.args[0], InferenceError)
        assert pipeline.state == PipelineState.ERROR
        assert pipeline.result is None


class TestSupersession:
    """Test that the latest request wins."""

    def test_second_classify_wins(  # type: ignore
        self, qtbot, ready_pipeline, sine_clip, stub_classifier
    ) -> None:
        """Test only the latest of two overlapping requests produces results."""
        results = []
        ready_pipeline.results_ready.connect(results.append)
        ready_pipeline.load_clip(sine_clip)

        first = ready_pipeline.classify()
        second = ready_pipeline.classify()
        wait_idle(qtbot, ready_pipeline)

        assert second > first
        assert len(results) == 1
        assert results[0].generation == second
        assert len(stub_classifier.batches) == 1

    def test_new_clip_discards_running_request(  # type: ignore
        self, qtbot, ready_pipeline, sine_clip, make_sine, stub_classifier
    ) -> None:
        """Test loading a clip mid-request drops the request's result."""
        results = []
        ready_pipeline.results_ready.connect(results.append)
        ready_pipeline.load_clip(sine_clip)

        ready_pipeline.classify()
        other = AudioClip(make_sine(1.0, 22050, freq=220.0), 22050)
        ready_pipeline.load_clip(other)
        wait_idle(qtbot, ready_pipeline)

        assert results == []
        assert stub_classifier.batches == []
        assert ready_pipeline.state == PipelineState.AUDIO_READY
        assert ready_pipeline.clip is other


class TestLoadFile:
    """Test decoding through the pipeline."""

    def test_load_wav(self, qtbot, pipeline, tmp_path, make_sine, event_bus) -> None:  # type: ignore
        """Test a decoded file becomes the current clip."""
        sf = pytest.importorskip("soundfile")
        path = tmp_path / "tone.wav"
        sf.write(str(path), make_sine(1.0, 44100), 44100)
        loaded = []
        event_bus.subscribe(Events.CLIP_LOADED, lambda **d: loaded.append(d))

        with qtbot.waitSignal(pipeline.clip_loaded, timeout=5000) as blocker:
            pipeline.load_file(path)

        clip = blocker.args[0]
        assert clip.sample_rate == 44100
        assert clip.num_samples == 44100
        assert pipeline.state == PipelineState.AUDIO_READY
        assert loaded[0]["sample_rate"] == 44100
        assert loaded[0]["source"] == path

    def test_decode_error_keeps_state(self, qtbot, pipeline, tmp_path) -> None:  # type: ignore
        """Test a decode failure is reported without a state change."""
        path = tmp_path / "notes.txt"
        path.write_text("not audio")

        with qtbot.waitSignal(pipeline.failed, timeout=5000) as blocker:
            pipeline.load_file(path)

        assert isinstance(blocker.args[0], DecodeError)
        assert pipeline.state == PipelineState.IDLE
        assert pipeline.clip is None

    def test_latest_file_wins(self, qtbot, pipeline, tmp_path, make_sine) -> None:  # type: ignore
        """Test only the last requested file is loaded."""
        sf = pytest.importorskip("soundfile")
        first = tmp_path / "first.wav"
        second = tmp_path / "second.wav"
        sf.write(str(first), make_sine(2.0, 22050), 22050)
        sf.write(str(second), make_sine(0.5, 22050), 22050)
        clips = []
        pipeline.clip_loaded.connect(clips.append)

        pipeline.load_file(first)
        pipeline.load_file(second)
        wait_idle(qtbot, pipeline)

        assert len(clips) == 1
        assert pipeline.clip.source == second

    def test_recorded_clip_beats_pending_file(  # type: ignore
        self, qtbot, pipeline, tmp_path, make_sine
    ) -> None:
        """Test a clip loaded while a file decodes is not replaced by the file."""
        sf = pytest.importorskip("soundfile")
        path = tmp_path / "old.wav"
        sf.write(str(path), make_sine(2.0, 22050), 22050)
        clips = []
        pipeline.clip_loaded.connect(clips.append)

        pipeline.load_file(path)
        recording = AudioClip(make_sine(1.0, 22050), 22050, source="recording")
        pipeline.load_clip(recording)
        wait_idle(qtbot, pipeline)

        assert clips == [recording]
        assert pipeline.clip is recording
        assert pipeline.state == PipelineState.AUDIO_READY

    def test_load_file_clears_results(  # type: ignore
        self, qtbot, ready_pipeline, sine_clip, tmp_path, event_bus
    ) -> None:
        """Test a new file request resets results shown for the previous clip."""
        resets = []
        event_bus.subscribe(Events.RESULTS_RESET, lambda **d: resets.append(d))
        ready_pipeline.load_clip(sine_clip)
        with qtbot.waitSignal(ready_pipeline.results_ready, timeout=10000):
            ready_pipeline.classify()
        resets.clear()

        path = tmp_path / "notes.txt"
        path.write_text("not audio")
        with qtbot.waitSignal(ready_pipeline.failed, timeout=5000):
            ready_pipeline.load_file(path)

        assert len(resets) == 1
