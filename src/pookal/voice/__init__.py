"""Voice companion: capture, transcription, reply and speech."""

from pookal.voice.pipeline import NO_AUDIO, NO_SPEECH, VoicePhase, VoicePipeline, VoiceSession

__all__ = ["NO_AUDIO", "NO_SPEECH", "VoicePhase", "VoicePipeline", "VoiceSession"]
