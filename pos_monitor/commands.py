# Commands - monitor, parse and help for POS Monitor

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from . import __version__
from .config import BAUD_RATES, MonitorConfig, load_config
from .dispatcher import CommandDispatcher, CommandSpec, OptionSpec
from .errors import ConfigurationError
from .pipeline import ReceiptPipeline
from .segmenter import StreamSegmenter
from .serial_source import SerialSource

logger = logging.getLogger(__name__)

TRANSLATION_OPTIONS = {
    'ocr': OptionSpec(description='Enable OCR. Parsing enabled implied'),
    'tessdata': OptionSpec(
        alias='t', type='string',
        description='Tessdata path used for OCR. OCR enabled implied',
    ),
    'language': OptionSpec(
        alias='l', type='string',
        description='Language(s) used for OCR, e.g. chi_sim+eng. OCR enabled implied',
    ),
    'psm': OptionSpec(
        alias='m', type='number',
        description='Tesseract page segmentation mode. OCR enabled implied',
    ),
    'ranges': OptionSpec(
        alias='r', type='array',
        description=(
            'Line ranges for OCR. A range is [from, count]; negative from counts '
            'from the bottom, negative count takes lines before from. '
            'Example: "[1, 2]" "[-2, 2]" "[-5, -3]" 12. OCR enabled implied'
        ),
    ),
    'encoding': OptionSpec(
        alias='e', type='string',
        description='Character encoding of receipt text (default gb18030)',
    ),
    'output': OptionSpec(
        alias='o', type='string',
        description='Directory results are written to (default: current directory)',
    ),
    'split': OptionSpec(description='Save every OCR flush as a separate result'),
    'config': OptionSpec(alias='c', type='string', description='JSON config file'),
}

MONITOR_OPTIONS = dict(TRANSLATION_OPTIONS, **{
    'interactive': OptionSpec(alias='I', description='Prompt for missing port and baud rate'),
    'port': OptionSpec(alias='p', type='string', description='The serial port'),
    'baud': OptionSpec(
        alias='b', type='number', choices=BAUD_RATES,
        description='The baud rate (default 115200)',
    ),
    'interval': OptionSpec(
        alias='i', type='number',
        description='Idle time (ms) that ends one receipt (default 100)',
    ),
    'parse': OptionSpec(alias='P', description='Parse the data received'),
})


def prompt_missing(config: MonitorConfig, options: Dict[str, Any],
                   ask: Callable[[str], str] = input):
    """Ask on stdin for the port and baud rate that were not given"""
    if not config.port:
        config.port = ask('What port would you like to connect? ').strip() or None
    if options.get('baud') is None:
        answer = ask(f"Select a baud rate ({', '.join(map(str, BAUD_RATES))}) [{config.baud}]: ").strip()
        if answer:
            try:
                config.baud = int(answer)
            except ValueError:
                raise ConfigurationError(f"Invalid baud rate: {answer}")


def run_monitor(config: MonitorConfig, stop_event: Optional[threading.Event] = None,
                source_factory=SerialSource, pipeline: ReceiptPipeline = None) -> dict:
    """Monitor the serial port until interrupted; returns pipeline stats"""
    stop_event = stop_event or threading.Event()
    pipeline = pipeline or ReceiptPipeline(config)
    segmenter = StreamSegmenter(config.interval, on_receipt=pipeline.submit)
    source = source_factory(
        config.port, config.baud, segmenter.on_bytes,
        on_open=lambda port: logger.info("Ready"),
    )

    logger.info("Monitoring %s at %d baud, idle interval %dms, parse=%s, ocr=%s",
                config.port, config.baud, config.interval_ms, config.parse, config.ocr is not None)
    source.start()
    try:
        while not stop_event.wait(1):
            pass
    except KeyboardInterrupt:
        logger.info("Stopping...")
    finally:
        source.stop()
        segmenter.flush_now()
        segmenter.close()
        pipeline.shutdown(wait=True)

    status = pipeline.get_status()
    logger.info("Session finished: %d receipt(s) received, %d saved, %d failed",
                status['received'], status['persisted'], status['failed'])
    return status


def monitor(args: List[str], options: Dict[str, Any], dispatcher: CommandDispatcher) -> int:
    """Monitor port data"""
    log = dispatcher.logger
    try:
        config = MonitorConfig.from_options(options, load_config(options.get('config')))
        if config.interactive:
            prompt_missing(config, options)
        config.validate()
    except ConfigurationError as e:
        log.error("monitor: %s", e)
        return 2
    run_monitor(config)
    return 0


def parse(args: List[str], options: Dict[str, Any], dispatcher: CommandDispatcher) -> int:
    """Decode and translate saved receipt files"""
    log = dispatcher.logger
    try:
        if not args:
            raise ConfigurationError('at least one receipt file is required')
        config = MonitorConfig.from_options(options, load_config(options.get('config')))
        config.parse = True
        config.validate_translation()
    except ConfigurationError as e:
        log.error("parse: %s", e)
        return 2

    pipeline = ReceiptPipeline(config)
    for name in args:
        try:
            data = Path(name).read_bytes()
        except OSError as e:
            log.error("Cannot read %s: %s", name, e)
            continue
        pipeline.process(data)
    status = pipeline.get_status()
    return 0 if status['failed'] == 0 and status['received'] == len(args) else 1


def show_help(args: List[str], options: Dict[str, Any], dispatcher: CommandDispatcher) -> int:
    """Print usage, or one command's options for `help COMMAND`.

    As the fallback, args hold the unknown command that was typed.
    """
    if args:
        command = dispatcher.lookup(args[0])
        if command is not None:
            print(dispatcher.build_parser(command).format_help())
            return 0
        dispatcher.logger.warning("Unknown command: %s", args[0])
    print(dispatcher.format_help())
    return 1 if args else 0


def build_dispatcher(strict: bool = False) -> CommandDispatcher:
    dispatcher = CommandDispatcher(prog='posmon', version=__version__, strict=strict)
    dispatcher.register(CommandSpec(
        name='monitor', alias='mon', handler=monitor,
        description='Monitor port data',
        options=MONITOR_OPTIONS,
    ))
    dispatcher.register(CommandSpec(
        name='parse', handler=parse,
        description='Parse saved receipt files',
        usage='posmon parse FILE... [options]',
        options=TRANSLATION_OPTIONS,
    ))
    dispatcher.register(CommandSpec(
        name='help', handler=show_help,
        description='Show help',
    ))
    return dispatcher
