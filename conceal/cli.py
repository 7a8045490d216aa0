"""
Command line front end.

    conceal embed cover.png voice.wav [out.png]
    conceal extract out.png [voice.wav]
    conceal info out.png
    conceal capacity cover.png
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from colorama import Fore, Style, just_fix_windows_console
from tqdm import tqdm

from .config import get_config
from .core import EmbedState, begin_embed, extract, read_header
from .errors import CapacityOverflowError, ConcealError
from .utils import (
    HEADER_SLOTS, calc_capacity_bits, open_image_rgb, payload_capacity_bytes,
    save_image_rgb,
)
from .utils_audio import open_wav_as_waveform, save_waveform_as_wav
from .visualize import diff_map

logger = logging.getLogger("conceal")


def setup_logging(level=logging.INFO):
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        logger.addHandler(handler)


def print_success(msg: str):
    print(f"{Fore.GREEN}✓ {msg}{Style.RESET_ALL}")


def print_info(msg: str):
    print(f"{Fore.CYAN}ℹ {msg}{Style.RESET_ALL}")


def print_warning(msg: str):
    print(f"{Fore.YELLOW}⚠ {msg}{Style.RESET_ALL}")


def print_error(msg: str):
    print(f"{Fore.RED}✗ {msg}{Style.RESET_ALL}", file=sys.stderr)


# ---------- Commands ----------
def cmd_embed(args, config) -> int:
    defaults = config["defaults"]
    output = args.output_image
    if output is None:
        base = os.path.splitext(args.cover_image)[0]
        output = f"{base}{defaults['output_suffix']}.png"

    cover = open_image_rgb(args.cover_image)
    waveform = open_wav_as_waveform(args.audio_file)
    print_info(f"Cover: {cover.shape[1]}x{cover.shape[0]}, audio: {waveform.sample_count} samples "
               f"@ {waveform.sample_rate} Hz")

    batch = args.batch_slots if args.batch_slots is not None else defaults["batch_slots"]
    stream, job = begin_embed(cover, waveform, batch_slots=batch or None)
    final = None
    bar = tqdm(total=100.0, unit="%", disable=not defaults["show_progress"],
               bar_format="{l_bar}{bar}| {n:.1f}/{total:.0f}%")
    try:
        for record in stream:
            bar.update(record.percent - bar.n)
            if record.done:
                final = record
    except CapacityOverflowError as e:
        bar.close()
        print_error(f"Audio does not fit: overflow at unit {e.unit_index} "
                    f"(capacity {payload_capacity_bytes(cover.shape[0] * cover.shape[1])} samples). "
                    "Choose a shorter recording or a larger image.")
        return 1
    except KeyboardInterrupt:
        job.cancel()
        bar.close()
        job.wait()
        print_warning("Embedding cancelled")
        return 1
    bar.close()

    if job.state is not EmbedState.COMPLETED or final is None:
        print_error(f"Embedding ended in state {job.state.value}")
        return 1

    save_image_rgb(final.data, output)
    print_success(f"Audio concealed in {output}")
    if args.diff:
        diff_map(cover, final.data).save(args.diff)
        print_info(f"Bit-change map written to {args.diff}")
    return 0


def cmd_extract(args, config) -> int:
    output = args.output_audio
    if output is None:
        output = os.path.splitext(args.stego_image)[0] + "_parsed.wav"
    waveform = extract(open_image_rgb(args.stego_image))
    save_waveform_as_wav(waveform, output)
    print_success(f"Extracted {waveform.sample_count} samples to {output}")
    return 0


def cmd_info(args, config) -> int:
    header = read_header(open_image_rgb(args.stego_image))
    print_info(f"Payload:     {header.payload_len} samples")
    print_info(f"Sample rate: {header.audio.sample_rate} Hz")
    print_info(f"Channels:    {header.audio.channels}")
    print_info(f"Bit depth:   {header.audio.bit_depth}")
    return 0


def cmd_capacity(args, config) -> int:
    arr = open_image_rgb(args.cover_image)
    pixels = arr.shape[0] * arr.shape[1]
    print_info(f"Image:    {arr.shape[1]}x{arr.shape[0]} ({pixels} pixels)")
    print_info(f"Slots:    {pixels * 3} ({calc_capacity_bits(arr)} bits, {HEADER_SLOTS} for header)")
    print_info(f"Capacity: {payload_capacity_bytes(pixels)} samples")
    return 0


COMMANDS = {
    "embed": cmd_embed,
    "extract": cmd_extract,
    "info": cmd_info,
    "capacity": cmd_capacity,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="conceal",
        description="Hide a WAV recording inside the low bits of an image, and get it back.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable DEBUG logging")
    parser.add_argument("--config", help="YAML config file")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("embed", help="Conceal a WAV file in an image")
    p.add_argument("cover_image", help="Cover image (any format Pillow reads)")
    p.add_argument("audio_file", help="PCM WAV file to hide")
    p.add_argument("output_image", nargs="?", help="Output PNG (default: <cover>_conceal.png)")
    p.add_argument("--batch-slots", type=int, help="Channel slots written per progress step")
    p.add_argument("--diff", help="Also write a bit-change map to this path")

    p = sub.add_parser("extract", help="Recover the WAV hidden in an image")
    p.add_argument("stego_image")
    p.add_argument("output_audio", nargs="?", help="Output WAV (default: <image>_parsed.wav)")

    p = sub.add_parser("info", help="Show the embedded header")
    p.add_argument("stego_image")

    p = sub.add_parser("capacity", help="Show how many samples an image can hold")
    p.add_argument("cover_image")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    just_fix_windows_console()
    args = build_parser().parse_args(argv)
    try:
        config = get_config(args.config)
    except ConcealError as e:
        print_error(str(e))
        return 1

    level = logging.DEBUG if args.verbose else getattr(logging, str(config["logging"]["level"]).upper(), logging.INFO)
    setup_logging(level)
    logger.debug("Executing '%s' command.", args.command)

    try:
        return COMMANDS[args.command](args, config)
    except (ConcealError, OSError) as e:
        print_error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
