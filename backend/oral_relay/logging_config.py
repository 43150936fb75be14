from __future__ import annotations
import logging
import os
import sys

from loguru import logger

from .settings import settings

# <level> and </level> are loguru colour tags
LOG_FORMAT = (
	"<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
	"<level>{level: <8}</level> | "
	"<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
	"<level>{message}</level> {extra}"
)


class InterceptHandler(logging.Handler):
	"""Forward records from the standard logging module to loguru.

	Uvicorn, FastAPI and the Google client libraries log through the stdlib;
	this keeps their output in the same sinks and format as ours.
	"""
	def emit(self, record: logging.LogRecord) -> None:
		try:
			level = logger.level(record.levelname).name
		except ValueError:
			level = record.levelno

		# Walk back to the frame that issued the logging call
		frame, depth = logging.currentframe(), 2
		while frame is not None and frame.f_code.co_filename == logging.__file__:
			frame = frame.f_back
			depth += 1

		logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str | None = None, log_dir: str | None = None) -> None:
	level = (level or settings.log_level).upper()
	log_dir = log_dir if log_dir is not None else settings.log_dir

	logger.remove()
	logger.add(
		sys.stderr,
		format=LOG_FORMAT,
		level=level,
		colorize=True,
		backtrace=True,
		diagnose=False,
	)

	if log_dir:
		os.makedirs(log_dir, exist_ok=True)
		logger.add(
			os.path.join(log_dir, "oral_relay_{time:YYYY-MM-DD}.log"),
			format=LOG_FORMAT,
			level="DEBUG",
			rotation="10 MB",
			retention="10 days",
			compression="zip",
			backtrace=True,
			diagnose=False,
		)

	logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
	for logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error", "fastapi"):
		logging_logger = logging.getLogger(logger_name)
		logging_logger.handlers = [InterceptHandler()]
		logging_logger.propagate = False
	# google-auth and grpc are chatty at DEBUG
	logging.getLogger("google").setLevel(logging.WARNING)

	logger.info("Logging initialised (level={})", level)
