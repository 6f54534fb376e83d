# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.
#
# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

from unittest import TestCase
from unittest.mock import patch

from rg_deployer.settings.env import (
    LOG_LEVEL_SETTING,
    parse_config_option,
    parse_log_level,
)


class TestParseConfigOption(TestCase):
    @patch.dict("rg_deployer.settings.env.environ", {LOG_LEVEL_SETTING: "warning"})
    def test_parse_config_option_valid(self):
        result = parse_config_option(LOG_LEVEL_SETTING, parse_log_level, "INFO")
        self.assertEqual(result, "WARNING")

    @patch.dict("rg_deployer.settings.env.environ", {LOG_LEVEL_SETTING: "loud"})
    def test_parse_config_option_invalid(self):
        result = parse_config_option(LOG_LEVEL_SETTING, parse_log_level, "INFO")
        self.assertEqual(result, "INFO")

    @patch.dict("rg_deployer.settings.env.environ", {}, clear=True)
    def test_parse_config_option_missing(self):
        result = parse_config_option(LOG_LEVEL_SETTING, parse_log_level, "INFO")
        self.assertEqual(result, "INFO")

    @patch.dict("rg_deployer.settings.env.environ", {"NUMBER": "hi"})
    def test_parse_config_option_parser_raises(self):
        result = parse_config_option("NUMBER", int, 100)
        self.assertEqual(result, 100)


class TestParseLogLevel(TestCase):
    def test_levels(self):
        self.assertEqual(parse_log_level(" debug "), "DEBUG")
        self.assertEqual(parse_log_level("WARN"), "WARN")
        self.assertIsNone(parse_log_level("trace"))
