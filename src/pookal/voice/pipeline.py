"""Voice capture cycle: listen -> transcribe -> respond -> speak.

The pipeline owns one ``VoiceSession`` at a time. Whatever happens during a
cycle it ends in ``idle`` with the input device released; failures are
recorded on the session as ``failed_stage`` rather than raised.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Protocol

from pookal.errors import VoiceStageError

logger = logging.getLogger(__name__)

NO_AUDIO = "no audio captured"
NO_SPEECH = "no speech detected"


class VoicePhase(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    SPEAKING = "speaking"


@dataclass
class VoiceSession:
    phase: VoicePhase = VoicePhase.IDLE
    transcript: str = ""
    response: str = ""
    failed_stage: str | None = None
    notice: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "transcript": self.transcript,
            "response": self.response,
            "failed_stage": self.failed_stage,
            "notice": self.notice,
        }


class AudioInput(Protocol):
    def start(self) -> None: ...

    def stop(self) -> Any:
        """Stop capturing, release the device and return the buffered audio."""

    def close(self) -> None: ...


class Transcriber(Protocol):
    def transcribe(self, audio: Any) -> str: ...


class Synthesizer(Protocol):
    def synthesize(self, text: str) -> Any: ...


class Player(Protocol):
    def play(self, audio: Any) -> None: ...


Responder = Callable[[str], Awaitable[str]]
StateCallback = Callable[[VoiceSession], None]


def _is_empty(audio: Any) -> bool:
    if audio is None:
        return True
    try:
        return len(audio) == 0
    except TypeError:
        return False


class VoicePipeline:
    def __init__(
        self,
        audio_input: AudioInput,
        transcriber: Transcriber,
        synthesizer: Synthesizer,
        player: Player,
        responder: Responder,
        auto_stop_seconds: float | None = 4.0,
        on_state_change: StateCallback | None = None,
    ):
        self.audio_input = audio_input
        self.transcriber = transcriber
        self.synthesizer = synthesizer
        self.player = player
        self.responder = responder
        self.auto_stop_seconds = auto_stop_seconds
        self.on_state_change = on_state_change

        self.session = VoiceSession()
        self._auto_stop_task: asyncio.Task | None = None
        self._cycle_task: asyncio.Task | None = None
        self._stopping = False
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def phase(self) -> VoicePhase:
        return self.session.phase

    def _emit(self) -> None:
        if self.on_state_change is None:
            return
        try:
            self.on_state_change(replace(self.session))
        except Exception as exc:
            logger.debug("Voice state callback failed: %s", exc)

    def _set_phase(self, phase: VoicePhase) -> None:
        self.session.phase = phase
        if phase is VoicePhase.IDLE:
            self._idle.set()
        else:
            self._idle.clear()
        self._emit()

    def _finish(self, *, notice: str | None = None, failed_stage: str | None = None) -> None:
        if notice is not None:
            self.session.transcript = ""
            self.session.notice = notice
        if failed_stage is not None:
            self.session.failed_stage = failed_stage
        self._set_phase(VoicePhase.IDLE)

    def _release_input(self) -> None:
        try:
            self.audio_input.close()
        except Exception as exc:
            logger.debug("Audio input close failed: %s", exc)

    def _cancel_auto_stop(self) -> None:
        task = self._auto_stop_task
        self._auto_stop_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _cancel_cycle(self) -> None:
        task = self._cycle_task
        self._cycle_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run_blocking(self, stage: str, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn, *args)
        except VoiceStageError:
            raise
        except Exception as exc:
            raise VoiceStageError(stage, str(exc) or type(exc).__name__) from exc

    async def start_listening(self) -> VoiceSession:
        """Begin a new capture, superseding whatever was in progress."""
        if self.session.phase is VoicePhase.LISTENING:
            logger.info("Superseding active capture")
            self._cancel_auto_stop()
            self._release_input()
        elif self.session.phase in (VoicePhase.PROCESSING, VoicePhase.SPEAKING):
            logger.info("Cancelling in-flight voice cycle")
        await self._cancel_cycle()

        self.session = VoiceSession()
        self._stopping = False
        try:
            await self._run_blocking("capture", self.audio_input.start)
        except VoiceStageError as exc:
            logger.error("Could not open audio input: %s", exc)
            self._release_input()
            self._finish(failed_stage="capture")
            return self.session

        self._set_phase(VoicePhase.LISTENING)
        if self.auto_stop_seconds is not None:
            self._auto_stop_task = asyncio.create_task(self._auto_stop(self.auto_stop_seconds))
        return self.session

    async def _auto_stop(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self.session.phase is VoicePhase.LISTENING:
            logger.debug("Auto-stopping capture after %.1fs", delay)
            await self.stop_listening()

    async def stop_listening(self) -> VoiceSession:
        """End capture and run the rest of the cycle. Returns the final session."""
        if self.session.phase is not VoicePhase.LISTENING or self._stopping:
            return self.session
        self._stopping = True
        self._cancel_auto_stop()
        session = self.session

        try:
            audio = await self._run_blocking("capture", self.audio_input.stop)
        except VoiceStageError as exc:
            logger.error("Audio capture failed: %s", exc)
            if self.session is session:
                self._finish(failed_stage="capture")
            return self.session
        finally:
            if self.session is session:
                self._stopping = False
                self._release_input()

        # Superseded or closed while the device was stopping.
        if self.session is not session or session.phase is not VoicePhase.LISTENING:
            return self.session
        if _is_empty(audio):
            self._finish(notice=NO_AUDIO)
            return self.session

        self._set_phase(VoicePhase.PROCESSING)
        task = asyncio.create_task(self._process(audio))
        self._cycle_task = task
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
        return self.session

    async def _process(self, audio: Any) -> None:
        try:
            transcript = await self._run_blocking("transcription", self.transcriber.transcribe, audio)
            transcript = (transcript or "").strip()
            if not transcript:
                self._finish(notice=NO_SPEECH)
                return
            self.session.transcript = transcript
            self._emit()

            try:
                response = await self.responder(transcript)
            except Exception as exc:
                raise VoiceStageError("inference", str(exc) or type(exc).__name__) from exc
            self.session.response = response
            self._set_phase(VoicePhase.SPEAKING)

            spoken = await self._run_blocking("synthesis", self.synthesizer.synthesize, response)
            await self._run_blocking("playback", self.player.play, spoken)
            self._finish()
        except VoiceStageError as exc:
            logger.error("Voice cycle failed: %s", exc)
            self._finish(failed_stage=exc.stage)
        except asyncio.CancelledError:
            self._finish()
            raise

    async def close(self) -> None:
        """Stop any capture or cycle and release the device."""
        self._cancel_auto_stop()
        await self._cancel_cycle()
        self._release_input()
        if self.session.phase is not VoicePhase.IDLE:
            self._finish()

    async def wait_idle(self) -> VoiceSession:
        await self._idle.wait()
        return self.session

    async def run_once(self) -> VoiceSession:
        """One full capture cycle, ended by the auto-stop timer."""
        await self.start_listening()
        if self.session.phase is VoicePhase.LISTENING and self.auto_stop_seconds is None:
            return await self.stop_listening()
        return await self.wait_idle()
