from __future__ import annotations

import argparse
import logging
import time

from live_tuner.audio import AudioInput, AudioInputConfig
from live_tuner.config import InstrumentPreset, TuningConfiguration
from live_tuner.engine import TickResult, TunerEngine
from live_tuner.notation import NotationSystem
from live_tuner.stability import PitchStabilityAnalyzer

logger = logging.getLogger(__name__)

TICK_SECONDS = 1.0 / 60.0
FEEDBACK_SECONDS = 1.5


def format_result(result: TickResult) -> str:
    note = result.note
    if note is None:
        return f"  --    conf {result.confidence:4.2f}  {result.volume_db:6.1f} dB"
    marker = "*" if result.in_tune else " "
    return (
        f"{marker} {note.label:<10} {note.cents:+6.1f} c  {note.frequency:8.2f} Hz  "
        f"conf {result.confidence:4.2f}  {result.volume_db:6.1f} dB"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Console chromatic tuner")
    parser.add_argument(
        "--preset",
        default=InstrumentPreset.CHROMATIC.value,
        choices=[p.value for p in InstrumentPreset],
    )
    parser.add_argument("--a4", type=float, default=440.0, help="reference pitch for A4 in Hz")
    parser.add_argument("--transpose", type=int, default=0, help="written-pitch transposition in semitones")
    parser.add_argument(
        "--notation",
        default=NotationSystem.ENGLISH.value,
        choices=[n.value for n in NotationSystem],
    )
    parser.add_argument("--flats", action="store_true", help="show flats instead of sharps")
    parser.add_argument("--smoothing", type=float, default=0.7)
    parser.add_argument("--target", type=float, default=440.0, help="target Hz in manual mode")
    parser.add_argument("--tolerance", type=float, default=5.0, help="in-tune tolerance in cents")
    parser.add_argument("--sample-rate", type=int, default=44100)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    tuning = TuningConfiguration(
        reference_pitch_hz=args.a4,
        use_sharps=not args.flats,
        transposition_semitones=args.transpose,
        notation_system=NotationSystem(args.notation),
        instrument_preset=InstrumentPreset(args.preset),
        manual_target_frequency_hz=args.target,
        smoothing_factor=args.smoothing,
        tuning_tolerance_cents=args.tolerance,
    )
    audio = AudioInput(AudioInputConfig(sample_rate=args.sample_rate))
    engine = TunerEngine()
    stability = PitchStabilityAnalyzer()

    logger.info("listening (%s, A4=%.1f Hz); Ctrl+C to stop", tuning.instrument_preset.value, args.a4)
    audio.start()
    last_feedback = time.monotonic()
    try:
        while True:
            frame = audio.read_frame()
            if frame is not None:
                now = time.monotonic()
                result = engine.tick(frame, tuning)
                stability.push(now, result.note, result.confidence)
                line = format_result(result)
                if now - last_feedback >= FEEDBACK_SECONDS:
                    report = stability.assess(now)
                    line = f"{line}  | {report.feedback}"
                    last_feedback = now
                print(line, end="\r", flush=True)
            time.sleep(TICK_SECONDS)
    except KeyboardInterrupt:
        print()
    finally:
        audio.stop()


if __name__ == "__main__":
    main()
