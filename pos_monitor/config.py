# Configuration - Monitor settings for POS Monitor
# Defaults, then config.json, then command line options

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

BAUD_RATES = (921600, 230400, 115200, 57600, 38400, 19200, 9600)
DEFAULT_BAUDRATE = 115200
DEFAULT_INTERVAL_MS = 100
DEFAULT_ENCODING = 'gb18030'
DEFAULT_LANGUAGES = ['chi_sim', 'eng']

CONFIG_PATH = Path(__file__).resolve().parent.parent / 'config.json'

# Options that switch OCR on when present
OCR_OPTION_KEYS = ('language', 'psm', 'tessdata', 'ranges')


@dataclass
class OcrOptions:
    """Options handed to the OCR engine on every flush"""
    languages: List[str] = field(default_factory=lambda: list(DEFAULT_LANGUAGES))
    psm: Optional[int] = None
    tessdata: Optional[str] = None
    # (from, count) pairs, see raster.resolve_line_range
    ranges: List[Tuple[int, int]] = field(default_factory=list)


@dataclass
class MonitorConfig:
    """Settings for one monitoring (or parsing) session"""
    port: Optional[str] = None
    baud: int = DEFAULT_BAUDRATE
    interval_ms: int = DEFAULT_INTERVAL_MS
    parse: bool = False
    ocr: Optional[OcrOptions] = None
    encoding: str = DEFAULT_ENCODING
    output_dir: Path = field(default_factory=Path.cwd)
    interactive: bool = False
    flush_on_text: bool = True
    split_results: bool = False
    workers: int = 2

    @property
    def interval(self) -> float:
        """Idle interval in seconds"""
        return self.interval_ms / 1000.0

    @classmethod
    def from_options(cls, options: Dict[str, Any],
                     file_config: Optional[Dict[str, Any]] = None) -> 'MonitorConfig':
        """Build config from parsed command options layered over file config"""
        merged = dict(file_config or {})
        merged.update({k: v for k, v in options.items() if v is not None and v is not False})

        config = cls()
        config.port = merged.get('port') or None
        config.interactive = bool(merged.get('interactive', False))
        config.baud = _to_int(merged.get('baud', DEFAULT_BAUDRATE), 'baud')
        config.interval_ms = _to_int(merged.get('interval', DEFAULT_INTERVAL_MS), 'interval')
        config.encoding = merged.get('encoding') or DEFAULT_ENCODING
        if merged.get('output'):
            config.output_dir = Path(merged['output'])
        config.flush_on_text = bool(merged.get('flush_on_text', True))
        config.split_results = bool(merged.get('split', False))
        config.workers = _to_int(merged.get('workers', 2), 'workers')

        # Any OCR sub-option implies OCR, and OCR implies parsing
        if merged.get('ocr') or any(merged.get(k) not in (None, '', []) for k in OCR_OPTION_KEYS):
            config.ocr = OcrOptions()
            if merged.get('language'):
                config.ocr.languages = parse_languages(merged['language'])
            if merged.get('psm') is not None:
                config.ocr.psm = _to_int(merged['psm'], 'psm')
            if merged.get('tessdata'):
                config.ocr.tessdata = str(merged['tessdata'])
            if merged.get('ranges'):
                config.ocr.ranges = parse_ranges(merged['ranges'])
        config.parse = bool(merged.get('parse')) or config.ocr is not None
        return config

    def validate(self):
        """Raise ConfigurationError for settings that cannot work"""
        if not self.port:
            raise ConfigurationError('--port|-p is required')
        if self.baud not in BAUD_RATES:
            raise ConfigurationError(
                f"Unsupported baud rate {self.baud}, choose one of {', '.join(map(str, BAUD_RATES))}"
            )
        self.validate_translation()

    def validate_translation(self):
        """Validation shared by monitor and offline parsing"""
        if self.interval_ms < 0:
            raise ConfigurationError('--interval must not be negative')
        if self.workers < 1:
            raise ConfigurationError('workers must be at least 1')
        try:
            'test'.encode(self.encoding)
        except LookupError:
            raise ConfigurationError(f"Unknown encoding: {self.encoding}")
        if self.ocr and self.ocr.psm is not None and not 0 <= self.ocr.psm <= 13:
            raise ConfigurationError('--psm must be between 0 and 13')


def load_config(path=None) -> Dict[str, Any]:
    """Load JSON config file; a missing default file means no overrides"""
    config_path = Path(path) if path else CONFIG_PATH
    if not config_path.exists():
        if path:
            raise ConfigurationError(f"Config file not found: {config_path}")
        return {}
    try:
        with open(config_path, encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Cannot read config {config_path}: {e}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {config_path} must contain a JSON object")
    logger.debug("Loaded config from %s", config_path)
    return data


def parse_languages(value) -> List[str]:
    """'chi_sim+eng', 'chi_sim,eng' or a list -> ['chi_sim', 'eng']"""
    if isinstance(value, str):
        value = value.replace(',', '+').split('+')
    return [v.strip() for v in value if v and v.strip()]


def parse_ranges(values) -> List[Tuple[int, int]]:
    """Parse line ranges: '[1, 2]', '[-5, -3]' or a bare line number like 12"""
    if isinstance(values, (str, int)):
        values = [values]
    ranges = []
    for value in values:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                raise ConfigurationError(f"Invalid range: {value!r}")
        if isinstance(value, int) and not isinstance(value, bool):
            value = [value, 1]
        if (not isinstance(value, (list, tuple)) or len(value) != 2
                or not all(isinstance(v, int) for v in value)):
            raise ConfigurationError(f"Invalid range: {value!r}")
        if value[0] == 0:
            raise ConfigurationError('Range start must not be 0 (lines count from 1, or -1 from the bottom)')
        ranges.append((value[0], value[1]))
    return ranges


def _to_int(value, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"--{name} must be a number, got {value!r}")
