from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


class LoggerConfig:
    """
    Sets up the client logger with console and file handlers.
    """

    def __init__(
        self,
        log_file='orion_client.log',
        log_dir='logs',
        level=logging.INFO,
        formatter=None,
        network_debug=False,
    ):
        """
        Initialise logger with file name, level, and formatter.

        Args:
            log_file (str): Log file name, defaults to 'orion_client.log'.
            log_dir (str): Log storage directory, defaults to 'logs'.
            level (int | str): The logging level. Defaults to logging.INFO.
            formatter (logging.Formatter): Log formatter, defaults to standard.
            network_debug (bool): Log the ``orion_client.net`` package at
                DEBUG regardless of ``level``.
        """
        self.log_file = log_file
        self.log_dir = log_dir
        self.level = level
        self.network_debug = network_debug
        self.formatter = formatter or logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        )

        # Package root, so every module logger propagates here
        self.logger = logging.getLogger('orion_client')
        self.setup_logger()

    @classmethod
    def from_settings(cls, settings) -> LoggerConfig:
        """
        Build a logger configuration from client settings.

        Args:
            settings (ClientSettings): Supplies the log location, level and
                the network debug toggle.

        Returns:
            LoggerConfig: The applied configuration.
        """
        return cls(
            log_file=settings.log_file,
            log_dir=settings.log_dir,
            level=settings.log_level.upper(),
            network_debug=settings.enable_network_logging,
        )

    def setup_logger(self):
        """
        Configures the logger with rotating file handler and console handler.
        """
        if self.network_debug:
            logging.getLogger('orion_client.net').setLevel(logging.DEBUG)

        # Prevent adding handlers multiple times
        if self.logger.handlers:
            return

        Path(self.log_dir).mkdir(parents=True, exist_ok=True)

        self.logger.addHandler(self.get_file_handler())
        self.logger.addHandler(self.get_console_handler())
        self.logger.setLevel(self.level)

        self.logger.debug('Logger handlers set up complete.')

    def get_file_handler(self):
        """
        Creates and returns a rotating file handler.

        Returns:
            logging.Handler: A configured rotating file handler.
        """
        file_handler = RotatingFileHandler(
            filename=Path(self.log_dir) / self.log_file,
            maxBytes=1_000_000,
            backupCount=5,
        )
        file_handler.setLevel(self._handler_level())
        file_handler.setFormatter(self.formatter)
        return file_handler

    def get_console_handler(self):
        """
        Creates and returns a console handler.

        Returns:
            logging.Handler: A configured console handler.
        """
        console_handler = logging.StreamHandler()
        console_handler.setLevel(self._handler_level())
        console_handler.setFormatter(self.formatter)
        return console_handler

    def get_logger(self):
        """
        Returns the configured logger instance.

        Returns:
            logging.Logger: A configured logger instance.
        """
        return self.logger

    def _handler_level(self):
        # Handlers must pass DEBUG records through when network debug is on
        return logging.DEBUG if self.network_debug else self.level
