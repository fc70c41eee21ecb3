#!/usr/bin/env python3
"""
Unit tests for logging setup and sensitive data filtering.
"""

import os
import sys
import logging
import logging.handlers
import tempfile
import unittest

# Add the project directory to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from crowd_groups.logging_setup import (
    SensitiveDataFilter,
    PACKAGE_LOGGER,
    setup_logging,
    reset_logging,
)


def filtered(msg, *args):
    record = logging.LogRecord('test', logging.INFO, __file__, 1, msg, args, None)
    SensitiveDataFilter().filter(record)
    return record.getMessage()


class TestSensitiveDataFilter(unittest.TestCase):
    """Test cases for SensitiveDataFilter."""

    def test_key_value_password(self):
        message = filtered("Binding with bind_password=hunter2, user=svc")

        self.assertNotIn('hunter2', message)
        self.assertIn('bind_password=****', message)
        self.assertIn('user=svc', message)

    def test_dict_repr(self):
        message = filtered("Directory config: %s", {'application_password': 'secret', 'module': 'crowd'})

        self.assertNotIn('secret', message.replace('****', ''))
        self.assertIn("'module': 'crowd'", message)

    def test_basic_authorization_header(self):
        message = filtered("Headers: {'Authorization': 'Basic c29uYXI6c2VjcmV0', 'Accept': 'application/json'}")

        self.assertNotIn('c29uYXI6c2VjcmV0', message)
        self.assertIn('Basic ****', message)

    def test_plain_message_untouched(self):
        self.assertEqual(filtered("Looking up user groups for user alice"),
                         "Looking up user groups for user alice")


class TestSetupLogging(unittest.TestCase):
    """Test cases for setup_logging."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp(prefix='crowd_groups_logs_')
        self.log_file = os.path.join(self.temp_dir, 'groups.log')
        self.package_logger = logging.getLogger(PACKAGE_LOGGER)
        self.addCleanup(reset_logging)

    def test_setup_writes_log_file(self):
        setup_logging({'level': 'DEBUG', 'log_file': self.log_file})
        logging.getLogger('crowd_groups.test').debug("password=topsecret")
        for handler in self.package_logger.handlers:
            handler.flush()

        with open(self.log_file) as f:
            content = f.read()

        self.assertIn('password=****', content)
        self.assertNotIn('topsecret', content)

    def test_root_logger_untouched(self):
        root = logging.getLogger()
        host_handler = logging.NullHandler()
        root.addHandler(host_handler)
        self.addCleanup(root.removeHandler, host_handler)
        root_level = root.level

        setup_logging({'level': 'DEBUG', 'log_file': self.log_file, 'console_output': True})

        self.assertIn(host_handler, root.handlers)
        self.assertEqual(root.level, root_level)
        self.assertEqual(len(self.package_logger.handlers), 2)

    def test_setup_again_replaces_handlers(self):
        setup_logging({'log_file': self.log_file})
        setup_logging({'log_file': self.log_file, 'console_output': True})

        self.assertEqual(len(self.package_logger.handlers), 2)

    def test_reset_keeps_foreign_handlers(self):
        foreign = logging.NullHandler()
        self.package_logger.addHandler(foreign)
        self.addCleanup(self.package_logger.removeHandler, foreign)

        setup_logging({'console_output': True})
        reset_logging()

        self.assertEqual(self.package_logger.handlers, [foreign])

    def test_plain_file_without_rotation(self):
        setup_logging({'log_file': self.log_file, 'rotation': 'none'})

        handler = self.package_logger.handlers[-1]
        self.assertIs(type(handler), logging.FileHandler)

    def test_daily_rotation_keeps_retention_days(self):
        setup_logging({'log_file': self.log_file, 'retention_days': 3})

        handler = self.package_logger.handlers[-1]
        self.assertIsInstance(handler, logging.handlers.TimedRotatingFileHandler)
        self.assertEqual(handler.backupCount, 3)

    def test_propagate_setting(self):
        self.addCleanup(setattr, self.package_logger, 'propagate', True)
        setup_logging({'propagate': False})

        self.assertFalse(self.package_logger.propagate)


if __name__ == '__main__':
    unittest.main()
