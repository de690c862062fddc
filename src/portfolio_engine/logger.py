import logging
import sys
import json
import os
import gzip
import shutil
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from typing import Optional
from engine_config import LoggingConfig, get_config

# LogRecord attributes that are not user-supplied extra fields
_RECORD_ATTRIBUTES = set(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {'message', 'asctime'}


class CompressingTimedRotatingFileHandler(TimedRotatingFileHandler):
    """TimedRotatingFileHandler that gzips rotated files"""

    def doRollover(self):
        super().doRollover()

        dir_name, base_name = os.path.split(self.baseFilename)
        for file_name in os.listdir(dir_name or '.'):
            if file_name.startswith(base_name) and not file_name.endswith('.gz') and file_name != base_name:
                full_path = os.path.join(dir_name, file_name)
                try:
                    with open(full_path, 'rb') as f_in:
                        with gzip.open(f'{full_path}.gz', 'wb') as f_out:
                            shutil.copyfileobj(f_in, f_out)
                    os.remove(full_path)
                except OSError as e:
                    # Rollover itself succeeded; keep the uncompressed file
                    print(f"Error during log compression of {full_path}: {e}", file=sys.stderr)


class StructuredFormatter(logging.Formatter):
    """Text or JSON formatter that carries extra fields such as plan_id"""

    def __init__(self, fmt: str = 'text'):
        super().__init__()
        self.fmt = fmt

    def format(self, record):
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        extras = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES or key.startswith('_'):
                continue
            extras[key] = value.isoformat() if isinstance(value, datetime) else value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        if self.fmt == 'json':
            log_data.update(extras)
            return json.dumps(log_data, default=str)

        base_msg = f"{log_data['timestamp']} - {log_data['logger']} - {log_data['level']} - {log_data['message']}"
        for key in sorted(extras):
            base_msg += f" [{key}={extras[key]}]"
        if 'exception' in log_data:
            base_msg += f"\n{log_data['exception']}"
        return base_msg


def configure_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """Configure the root logger with structured formatting; returns the root logger"""
    config = config or get_config().logging
    root_logger = logging.getLogger()

    # Clear existing handlers to avoid duplicates on reconfiguration
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(getattr(logging, config.level))
    formatter = StructuredFormatter(config.format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if config.file_path:
        log_dir = os.path.dirname(config.file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = CompressingTimedRotatingFileHandler(
            filename=config.file_path,
            when='midnight',
            interval=1,
            backupCount=config.backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    return root_logger
