"""
Structured logging for the bridge processes.

- getLogger() with no name derives 'package.module[.Class]' from the caller
- Keyword arguments on log calls become trailing [key=value] fields
- All loggers of one top-level package share one rotating file (lorabridge.log, cotkit.log)
- Rollover trims the log directory back under a disk budget

Usage:
    from cotkit.logging import getLogger

    class TransportChannel:
        def __init__(self):
            self.log = getLogger()  # 'lorabridge.phy.channel.TransportChannel'

        def start(self):
            self.log.info("Channel started", rxUri=self.rxUri)

Property of Uncompromising Sensors LLC.
"""

# Imports
import functools, logging, logging.handlers, os, socket, sys
from pathlib import Path
from typing import Dict, Optional
from datetime import datetime, timezone


_HOST = socket.gethostname()
_LEVEL_METHODS = ('debug', 'info', 'warning', 'error', 'critical')

_settings = {
    'logDir': None,
    'fileBytes': 5_000_000,
    'fileBackups': 3,
    'budgetMb': 256,
    'console': True,
    'level': logging.INFO,
    'utc': True
}
_ready = False
_sharedFileHandlers: Dict[str, logging.Handler] = {}

# Attributes every LogRecord carries; anything else on a record is a structured field
_RECORD_ATTRS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime', 'host'}


def configureLogging(logDir: Optional[str] = None, level: str = 'INFO', console: bool = True,
                     fileBytes: int = 5_000_000, fileBackups: int = 3, budgetMb: int = 256,
                     utc: bool = True):
    """
    Set process-wide logging options. Loggers created afterwards pick them up.

    Args:
        logDir: Log directory (default: $LORABRIDGE_LOG_DIR, else ./logs)
        level: Level name, case-insensitive
        console: Mirror records to stderr
        fileBytes: Size at which a log file rolls over
        fileBackups: Rolled files kept per app
        budgetMb: Upper bound for the whole log directory
        utc: Timestamps in UTC instead of local time
    """
    global _ready

    directory = Path(logDir or os.environ.get('LORABRIDGE_LOG_DIR') or Path.cwd() / 'logs').resolve()
    directory.mkdir(parents=True, exist_ok=True)

    _settings.update(
        logDir=str(directory),
        level=_levelNumber(level),
        console=console,
        fileBytes=fileBytes,
        fileBackups=fileBackups,
        budgetMb=budgetMb,
        utc=utc
    )
    _ready = True


def _levelNumber(level) -> int:
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def _callerName() -> str:
    """Module (and enclosing class, if any) of the first frame outside cotkit.logging"""
    frame = sys._getframe(1)
    try:
        while frame is not None:
            moduleName = frame.f_globals.get('__name__', '')
            if moduleName and not moduleName.startswith(('cotkit.logging', 'importlib')) and moduleName != '__main__':
                owner = frame.f_locals.get('self')
                if owner is not None:
                    return f"{moduleName}.{type(owner).__name__}"
                cls = frame.f_locals.get('cls')
                if isinstance(cls, type):
                    return f"{moduleName}.{cls.__name__}"
                return moduleName
            frame = frame.f_back
        return 'unknown'
    finally:
        del frame


class StructuredFormatter(logging.Formatter):
    """'<time> - <host> - <logger> - <LEVEL> - message [key=value, ...]'"""

    def __init__(self, fmt=None, utc=True):
        super().__init__(fmt)
        self.utc = utc

    def formatTime(self, record, datefmt=None):
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc if self.utc else None)
        return stamp.strftime(datefmt) if datefmt else stamp.strftime('%Y-%m-%d %H:%M:%S') + f",{int(record.msecs):03d}"

    def format(self, record):
        record.host = _HOST
        fields = ', '.join(f"{key}={value}" for key, value in vars(record).items()
                           if key not in _RECORD_ATTRS and not key.startswith('_'))
        if not fields:
            return super().format(record)

        # Other handlers format the same record; restore msg afterwards
        plain = record.msg
        record.msg = f"{plain} [{fields}]"
        try:
            return super().format(record)
        finally:
            record.msg = plain


class _BudgetedFileHandler(logging.handlers.RotatingFileHandler):

    def doRollover(self):
        super().doRollover()
        _trimLogDirectory()


def _fileHandlerFor(fileName: str) -> logging.Handler:
    path = os.path.join(_settings['logDir'], fileName)
    handler = _sharedFileHandlers.get(path)
    if handler is None:
        handler = _BudgetedFileHandler(path, maxBytes=_settings['fileBytes'],
                                       backupCount=_settings['fileBackups'], encoding='utf-8', delay=True)
        handler.setLevel(_settings['level'])
        handler.setFormatter(StructuredFormatter('%(asctime)s - %(host)s - %(name)s - %(levelname)s - %(message)s',
                                                 utc=_settings['utc']))
        _sharedFileHandlers[path] = handler
    return handler


def getLogger(name: Optional[str] = None, separateFile: bool = False) -> logging.Logger:
    """
    Logger for the caller, configured on first use.

    Name detection walks the stack, so call this once per instance or module and keep the result.

    Args:
        name: Explicit logger name (detected from the caller when None)
        separateFile: Give this logger its own '<name>.log' instead of the package file

    Returns:
        logging.Logger whose level methods take structured **kwargs
    """
    if not _ready:
        configureLogging()

    logger = logging.getLogger(name or _callerName())
    logger.propagate = False

    if not getattr(logger, '_cotkitReady', False):
        logger.setLevel(_settings['level'])
        fileName = f"{logger.name}.log" if separateFile else f"{logger.name.split('.')[0]}.log"
        logger.addHandler(_fileHandlerFor(fileName))

        if _settings['console']:
            stream = logging.StreamHandler()
            stream.setLevel(_settings['level'])
            stream.setFormatter(StructuredFormatter('%(name)s - %(levelname)s - %(message)s', utc=_settings['utc']))
            logger.addHandler(stream)

        _acceptFields(logger)
        logger._cotkitReady = True

    return logger


def _acceptFields(logger: logging.Logger) -> None:
    """Let log.info("msg", key=value) stand in for log.info("msg", extra={'key': value})"""

    def withFields(method):
        @functools.wraps(method)
        def call(msg, *args, exc_info=False, stack_info=False, **fields):
            method(msg, *args, exc_info=exc_info, stack_info=stack_info, extra=fields or None,
                   stacklevel=2)
        return call

    for levelName in _LEVEL_METHODS:
        setattr(logger, levelName, withFields(getattr(logger, levelName)))


def _trimLogDirectory() -> None:
    """Delete the oldest log files until the directory fits in budgetMb"""
    budget = _settings['budgetMb'] * 1024 * 1024
    try:
        entries = [(p.stat(), p) for p in Path(_settings['logDir']).rglob('*.log*') if p.is_file()]
    except OSError:
        return

    used = sum(stat.st_size for stat, _ in entries)
    for stat, path in sorted(entries, key=lambda entry: entry[0].st_mtime):
        if used <= budget:
            break
        try:
            path.unlink()
        except OSError:
            continue
        used -= stat.st_size
