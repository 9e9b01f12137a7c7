# Command Dispatcher - Subcommand registry for POS Monitor
# Builds an argparse parser per command and routes argv to its handler

import argparse
import logging
import sys
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Sequence

from .errors import ConfigurationError

OPTION_TYPES = {
    'string': str,
    'number': int,
    'float': float,
}


class CommandParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of exiting on bad options"""

    def error(self, message):
        raise ConfigurationError(f"{self.prog}: {message}")


@dataclass(frozen=True)
class OptionSpec:
    """Declarative description of one command option"""
    alias: Optional[str] = None
    type: str = 'boolean'  # boolean | string | number | float | array
    default: Any = None
    choices: Optional[Sequence[Any]] = None
    description: str = ''


@dataclass(frozen=True)
class CommandSpec:
    """A registered subcommand"""
    name: str
    handler: Callable[[List[str], Dict[str, Any], 'CommandDispatcher'], Optional[int]]
    description: str = ''
    alias: Optional[str] = None
    usage: str = ''
    options: Dict[str, OptionSpec] = field(default_factory=dict)


class CommandDispatcher:
    """Registers subcommands and dispatches argv to them.

    * default - command run when argv is empty
    * usage - command run for -h/--help
    * fallback - command run for an unknown command name; it receives the
      whole argv. With ``strict`` an unknown name is an error instead.
    """

    def __init__(self, prog: str = 'posmon', version: str = '', strict: bool = True,
                 usage: str = 'help', fallback: str = None, default: str = None):
        self.prog = prog
        self.version = version
        self.strict = strict
        self.usage = usage
        self.fallback = fallback or usage
        self.default = default or usage
        self.commands: Dict[str, CommandSpec] = {}
        self.aliases: Dict[str, str] = {}
        self.error_listeners: List[Callable[[Exception], None]] = []
        self.logger = logging.getLogger('pos_monitor')

    def register(self, command: CommandSpec):
        """Register a command; options are normalized once here"""
        command = replace(command, options=self.transform_options(command.options))
        self.commands[command.name] = command
        if command.alias:
            self.aliases[command.alias] = command.name
        return command

    @staticmethod
    def transform_options(options: Dict[str, OptionSpec]) -> Dict[str, OptionSpec]:
        """Exchange name and alias for single character aliases.

        ``port`` with alias ``p`` is stored under ``p`` with alias ``port``, so
        the short form is the canonical option key. No alias, no swap.
        """
        result = {}
        for name, spec in (options or {}).items():
            if isinstance(spec.alias, str) and len(spec.alias) == 1:
                result[spec.alias] = replace(spec, alias=name)
            else:
                result[name] = spec
        return result

    def on_error(self, listener: Callable[[Exception], None]):
        self.error_listeners.append(listener)

    def emit_error(self, error: Exception):
        if not self.error_listeners:
            self.logger.error("%s", error)
        for listener in self.error_listeners:
            listener(error)

    def lookup(self, name: str) -> Optional[CommandSpec]:
        name = self.aliases.get(name, name)
        return self.commands.get(name)

    def run(self, argv: Sequence[str] = None) -> int:
        """Parse argv and run the selected command; returns an exit code"""
        argv = list(sys.argv[1:] if argv is None else argv)

        if argv and argv[0] in ('-V', '--version'):
            print(self.version)
            return 0
        if argv and argv[0] in ('-h', '--help'):
            return self.run_command(self.usage, argv[1:])

        if not argv:
            return self.run_command(self.default, [])

        if self.lookup(argv[0]) is None:
            if self.strict:
                self.emit_error(ConfigurationError(f"Unknown command: {argv[0]}"))
                return 1
            return self.run_command(self.fallback, argv)

        return self.run_command(argv[0], argv[1:])

    def run_command(self, name: str, argv: Sequence[str]) -> int:
        command = self.lookup(name)
        if command is None:
            self.emit_error(ConfigurationError(f"Unknown command: {name}"))
            return 1
        parser = self.build_parser(command)
        try:
            namespace, args = parser.parse_known_args(list(argv))
        except ConfigurationError as e:
            self.emit_error(e)
            return 2
        except SystemExit as e:
            # -h/--help printed the command usage
            return e.code or 0
        options = self.expand_aliases(command, vars(namespace))
        try:
            code = command.handler(args, options, self)
        except Exception as e:
            self.emit_error(e)
            return 1
        return code or 0

    def build_parser(self, command: CommandSpec) -> CommandParser:
        parser = CommandParser(
            prog=f"{self.prog} {command.name}",
            description=command.description,
            usage=command.usage or None,
        )
        for key, spec in command.options.items():
            flags = [self._flag(key)]
            if spec.alias:
                flags.append(self._flag(spec.alias))
            kwargs = {'dest': key, 'help': spec.description}
            if spec.type == 'boolean':
                kwargs['action'] = 'store_true'
                kwargs['default'] = bool(spec.default)
            else:
                kwargs['default'] = spec.default
                if spec.type == 'array':
                    kwargs['nargs'] = '+'
                else:
                    kwargs['type'] = OPTION_TYPES.get(spec.type, str)
                if spec.choices:
                    kwargs['choices'] = list(spec.choices)
            parser.add_argument(*flags, **kwargs)
        return parser

    @staticmethod
    def expand_aliases(command: CommandSpec, options: Dict[str, Any]) -> Dict[str, Any]:
        """Make every option reachable under both its key and its alias"""
        options = dict(options)
        for key, spec in command.options.items():
            if spec.alias:
                options[spec.alias] = options.get(key)
        return options

    def format_help(self) -> str:
        lines = [f"Usage: {self.prog} <command> [options]", "", "Commands:"]
        for name, command in sorted(self.commands.items()):
            label = name if not command.alias else f"{name} ({command.alias})"
            lines.append(f"  {label:<16} {command.description}")
        lines += [
            "",
            "Options:",
            "  -h, --help       Show help",
            "  -V, --version    Show version number",
        ]
        return "\n".join(lines)

    @staticmethod
    def _flag(name: str) -> str:
        return f"-{name}" if len(name) == 1 else f"--{name}"
