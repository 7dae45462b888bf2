#!/usr/bin/env python3
"""
VIN Scan CLI - Command Line Interface
=====================================

Main CLI entry point for VIN capture.

Usage:
    vin-scan scan [--mode text|barcode]      Scan a VIN with the local camera
    vin-scan recognize <image>               Recognize a VIN in a still image
    vin-scan preprocess <image> <output>     Write the preprocessed scan band
    vin-scan correct <text>                  Show both correctors for a string
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path


def _load_config(args):
    from vin_capture.config import PipelineConfig, get_config, _setup_logging

    if args.config:
        config = PipelineConfig.load(args.config)
    else:
        config = get_config()
    if args.log_level:
        config.logging.level = args.log_level
    _setup_logging(config.logging)
    return config


def cmd_scan(args):
    """Run a live scan session until a VIN is accepted or Ctrl-C."""
    from vin_capture.capture import OpenCVCameraSource
    from vin_capture.session import ScanSession, ScanMode

    config = _load_config(args)
    if args.offline:
        config.registry.offline = True
    if args.engine:
        config.ocr.engine = args.engine
    config.capture.device_index = args.device

    errors = []
    session = ScanSession(
        OpenCVCameraSource(),
        config=config,
        on_error=errors.append,
    )

    async def run():
        await session.open(ScanMode(args.mode))
        try:
            if args.timeout:
                return await asyncio.wait_for(session.wait(), timeout=args.timeout)
            return await session.wait()
        finally:
            await session.close()

    try:
        vin = asyncio.run(run())
    except asyncio.TimeoutError:
        print("Error: no VIN recognized before timeout")
        return 1
    except KeyboardInterrupt:
        return 130

    if errors:
        print(f"Error: {errors[0]}")
        return 1
    if vin is None:
        print("No VIN recognized")
        return 1

    print(f"VIN: {vin}")
    return 0


def cmd_recognize(args):
    """Recognize a VIN in a still image."""
    from vin_capture.core import FrameBuffer, aggressive_correct, correct_vin
    from vin_capture.capture import crop_scan_band
    from vin_capture.preprocessing import preprocess
    from vin_capture.providers import OCREngineFactory, OCROptions

    config = _load_config(args)
    image_path = Path(args.image)
    if not image_path.exists():
        print(f"Error: Image not found: {image_path}")
        return 1

    frame = FrameBuffer.from_file(image_path)
    if args.band:
        frame = crop_scan_band(frame, config.capture)
    processed = preprocess(frame, config.preprocessing)

    engine = OCREngineFactory.create(args.engine or config.ocr.engine, config.ocr)
    handle = engine.initialize(OCROptions.from_config(config.ocr))
    try:
        result = handle.recognize(processed)
    finally:
        handle.dispose()

    candidate = correct_vin(result.raw_text)
    output = {
        "raw_text": result.raw_text,
        "confidence": result.confidence,
        "aggressive": aggressive_correct(result.raw_text),
        "candidate": candidate.to_dict(),
    }

    if args.json:
        print(json.dumps(output, indent=2))
    else:
        print(f"VIN: {candidate.vin}")
        print(f"Confidence: {result.confidence:.1f}")
        print(f"Raw text: {result.raw_text}")

    return 0 if candidate.matches_general_pattern else 1


def cmd_preprocess(args):
    """Write the preprocessed image for inspection."""
    from vin_capture.core import FrameBuffer
    from vin_capture.capture import crop_scan_band
    from vin_capture.preprocessing import preprocess

    config = _load_config(args)
    frame = FrameBuffer.from_file(args.image)
    if args.band:
        frame = crop_scan_band(frame, config.capture)

    preprocess(frame, config.preprocessing).save(args.output)
    print(f"Saved: {args.output}")
    return 0


def cmd_correct(args):
    """Print both corrector outputs for a string."""
    from vin_capture.core import aggressive_correct, correct_vin, validate_checksum

    candidate = correct_vin(args.text)
    output = {
        "aggressive": aggressive_correct(args.text),
        "position_aware": candidate.to_dict(),
        "checksum_valid": validate_checksum(candidate.vin),
    }
    print(json.dumps(output, indent=2))
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description='VIN Capture - Camera VIN recognition',
        prog='vin-scan'
    )
    parser.add_argument('--version', action='version', version='%(prog)s 1.0.0')
    parser.add_argument('--config', '-c', help='Settings file (JSON or YAML)')
    parser.add_argument('--log-level', help='Override log level (DEBUG, INFO, ...)')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Scan command
    scan_parser = subparsers.add_parser('scan', help='Scan a VIN with the local camera')
    scan_parser.add_argument('--mode', choices=['text', 'barcode'], default='text', help='Scan mode')
    scan_parser.add_argument('--device', '-d', type=int, default=0, help='Camera device index')
    scan_parser.add_argument('--engine', '-e', choices=['tesseract', 'paddleocr'], help='OCR engine')
    scan_parser.add_argument('--offline', action='store_true',
                             help='Validate with the check digit instead of NHTSA')
    scan_parser.add_argument('--timeout', '-t', type=float, help='Give up after N seconds')

    # Recognize command
    recognize_parser = subparsers.add_parser('recognize', help='Recognize VIN from image')
    recognize_parser.add_argument('image', help='Path to image file')
    recognize_parser.add_argument('--engine', '-e', choices=['tesseract', 'paddleocr'], help='OCR engine')
    recognize_parser.add_argument('--band', action='store_true', help='Crop the scan band first')
    recognize_parser.add_argument('--json', '-j', action='store_true', help='Output as JSON')

    # Preprocess command
    preprocess_parser = subparsers.add_parser('preprocess', help='Write the preprocessed image')
    preprocess_parser.add_argument('image', help='Path to image file')
    preprocess_parser.add_argument('output', help='Output image path')
    preprocess_parser.add_argument('--band', action='store_true', help='Crop the scan band first')

    # Correct command
    correct_parser = subparsers.add_parser('correct', help='Run both correctors on a string')
    correct_parser.add_argument('text', help='Raw OCR or typed text')

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        'scan': cmd_scan,
        'recognize': cmd_recognize,
        'preprocess': cmd_preprocess,
        'correct': cmd_correct,
    }

    return commands[args.command](args)


if __name__ == '__main__':
    sys.exit(main())
