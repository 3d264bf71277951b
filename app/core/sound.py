# app/core/sound.py
"""
Alert sounds synthesized at runtime (no bundled audio files).

  - "new_order": ascending double beep, 880 Hz then 1100 Hz (sine)
  - "assigned":  bell-like C5-E5-G5 chord (triangle), one second

SoundPlayer models an output that starts suspended (autoplay policy):
cues requested before the first user gesture are queued and played, in
order, as soon as unlock() is called.
"""

import enum
import io
import logging
import math
import struct
import threading
import wave
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

logger = logging.getLogger(__name__)

SAMPLE_RATE = 22050
DECAY_FLOOR = 0.001


class SoundCue(str, enum.Enum):
    NEW_ORDER = "new_order"
    ASSIGNED = "assigned"


@dataclass(frozen=True)
class Tone:
    frequency: float
    start: float
    duration: float
    gain: float
    waveform: str = "sine"


CUES: dict[SoundCue, tuple[Tone, ...]] = {
    SoundCue.NEW_ORDER: (
        Tone(880.0, 0.0, 0.22, 0.6),
        Tone(1100.0, 0.28, 0.22, 0.6),
    ),
    SoundCue.ASSIGNED: tuple(
        Tone(freq, 0.0, 1.0, 0.35, "triangle") for freq in (523.25, 659.25, 783.99)
    ),
}


def _oscillator(waveform: str, phase: float) -> float:
    """phase is in cycles."""
    if waveform == "sine":
        return math.sin(2 * math.pi * phase)
    if waveform == "triangle":
        return 2 * abs(2 * (phase - math.floor(phase + 0.5))) - 1
    raise ValueError(f"Unsupported waveform: {waveform}")


def _envelope(tone: Tone, t: float) -> float:
    """Exponential ramp from tone.gain down to DECAY_FLOOR over the tone."""
    return tone.gain * (DECAY_FLOOR / tone.gain) ** (t / tone.duration)


def render(cue: SoundCue, sample_rate: int = SAMPLE_RATE) -> list[float]:
    """Mix the cue's tones into float samples clipped to [-1, 1]."""
    tones = CUES[SoundCue(cue)]
    total = max(t.start + t.duration for t in tones)
    samples = [0.0] * int(math.ceil(total * sample_rate))

    for tone in tones:
        first = int(tone.start * sample_rate)
        count = int(tone.duration * sample_rate)
        for n in range(count):
            t = n / sample_rate
            samples[first + n] += _envelope(tone, t) * _oscillator(
                tone.waveform, tone.frequency * t
            )

    return [max(-1.0, min(1.0, s)) for s in samples]


@lru_cache
def synthesize_wav(cue: SoundCue, sample_rate: int = SAMPLE_RATE) -> bytes:
    """16-bit mono PCM WAV bytes for a cue."""
    pcm = b"".join(
        struct.pack("<h", int(s * 32767)) for s in render(cue, sample_rate)
    )
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buf.getvalue()


class SoundPlayer:
    """
    Plays cues through an output callable, deferring while suspended.

    output receives (cue, wav_bytes).
    """

    def __init__(
        self,
        output: Callable[[SoundCue, bytes], None],
        unlocked: bool = False,
    ):
        self._output = output
        self._unlocked = unlocked
        self._pending: list[SoundCue] = []
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        return "running" if self._unlocked else "suspended"

    @property
    def pending(self) -> tuple[SoundCue, ...]:
        return tuple(self._pending)

    def play(self, cue: SoundCue) -> None:
        cue = SoundCue(cue)
        with self._lock:
            if not self._unlocked:
                logger.debug("Audio suspended, deferring %s", cue.value)
                self._pending.append(cue)
                return
        self._output(cue, synthesize_wav(cue))

    def unlock(self) -> None:
        """Call on the first user gesture; flushes deferred cues."""
        with self._lock:
            if self._unlocked:
                return
            self._unlocked = True
            pending, self._pending = self._pending, []
        for cue in pending:
            self._output(cue, synthesize_wav(cue))
