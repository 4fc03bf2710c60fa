"""Local audio backends: sounddevice capture/playback, faster-whisper, piper.

All third-party imports are deferred so the package works without the
``voice`` extra installed. Methods here are blocking; the pipeline runs
them in the default executor.
"""

from __future__ import annotations

import io
import logging
import threading
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pookal.errors import VoiceStageError

if TYPE_CHECKING:
    from pookal.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class SpokenAudio:
    samples: Any
    sample_rate: int


class SoundDeviceInput:
    """Microphone capture through ``sounddevice.InputStream``."""

    def __init__(self, sample_rate: int = 16000, channels: int = 1, device: int | str | None = None):
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device
        self._stream: Any = None
        self._chunks: list[Any] = []
        self._lock = threading.Lock()

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug("Input stream status: %s", status)
        with self._lock:
            self._chunks.append(indata.copy())

    def start(self) -> None:
        try:
            import sounddevice as sd
        except ImportError as exc:
            raise VoiceStageError("capture", "sounddevice is not installed (pip install 'pookal[voice]')") from exc

        self.close()
        with self._lock:
            self._chunks = []
        try:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                device=self.device,
                callback=self._callback,
            )
            self._stream.start()
        except Exception as exc:
            self._stream = None
            raise VoiceStageError("capture", str(exc)) from exc
        logger.debug("Microphone open at %d Hz", self.sample_rate)

    def stop(self) -> Any:
        import numpy as np

        self.close()
        with self._lock:
            chunks, self._chunks = self._chunks, []
        if not chunks:
            return np.zeros(0, dtype=np.float32)
        audio = np.concatenate(chunks, axis=0)
        if audio.ndim > 1:
            audio = audio[:, 0]
        return audio.astype(np.float32, copy=False)

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()


class WhisperTranscriber:
    """Speech to text with faster-whisper; the model loads on first use."""

    def __init__(self, model_size: str = "tiny.en", device: str = "cpu", compute_type: str = "int8"):
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self._model: Any = None

    def _load(self) -> Any:
        if self._model is None:
            try:
                from faster_whisper import WhisperModel
            except ImportError as exc:
                raise VoiceStageError(
                    "transcription", "faster-whisper is not installed (pip install 'pookal[voice]')"
                ) from exc
            logger.info("Loading Whisper model %s on %s", self.model_size, self.device)
            self._model = WhisperModel(self.model_size, device=self.device, compute_type=self.compute_type)
        return self._model

    def transcribe(self, audio: Any) -> str:
        model = self._load()
        segments, _info = model.transcribe(audio, language="en", beam_size=1)
        text = " ".join(segment.text.strip() for segment in segments)
        logger.debug("Transcribed %d chars", len(text))
        return text.strip()


class PiperSynthesizer:
    """Text to speech with a local piper voice model (.onnx)."""

    def __init__(self, model_path: str | Path):
        self.model_path = Path(model_path).expanduser()
        self._voice: Any = None

    def _load(self) -> Any:
        if self._voice is None:
            try:
                from piper import PiperVoice
            except ImportError as exc:
                raise VoiceStageError("synthesis", "piper-tts is not installed (pip install 'pookal[voice]')") from exc
            if not self.model_path.is_file():
                raise VoiceStageError("synthesis", f"Piper model not found: {self.model_path}")
            self._voice = PiperVoice.load(str(self.model_path))
        return self._voice

    def synthesize(self, text: str) -> SpokenAudio:
        import soundfile as sf

        voice = self._load()
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav_file:
            if hasattr(voice, "synthesize_wav"):
                voice.synthesize_wav(text, wav_file)
            else:
                voice.synthesize(text, wav_file)
        buffer.seek(0)
        samples, sample_rate = sf.read(buffer, dtype="float32")
        return SpokenAudio(samples=samples, sample_rate=int(sample_rate))


class SoundDevicePlayer:
    def __init__(self, device: int | str | None = None):
        self.device = device

    def play(self, audio: SpokenAudio) -> None:
        try:
            import sounddevice as sd
        except ImportError as exc:
            raise VoiceStageError("playback", "sounddevice is not installed (pip install 'pookal[voice]')") from exc
        if audio is None or len(audio.samples) == 0:
            return
        sd.play(audio.samples, audio.sample_rate, device=self.device)
        sd.wait()

    def stop(self) -> None:
        import sounddevice as sd

        sd.stop()


def build_voice_pipeline(settings: Settings, responder, on_state_change=None):
    """Pipeline wired to the local microphone, Whisper and Piper."""
    from pookal.voice.pipeline import VoicePipeline

    return VoicePipeline(
        audio_input=SoundDeviceInput(settings.voice_sample_rate, settings.voice_channels),
        transcriber=WhisperTranscriber(settings.whisper_model, settings.whisper_device),
        synthesizer=PiperSynthesizer(settings.piper_model_path),
        player=SoundDevicePlayer(),
        responder=responder,
        auto_stop_seconds=settings.voice_auto_stop_seconds,
        on_state_change=on_state_change,
    )
