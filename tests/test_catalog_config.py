import unittest
from unittest.mock import patch, Mock
import tempfile
import sys
import os

import requests

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from resilience_auditor.catalog import (
    DataLoadError, load_sites, load_tests, load_demo_scenarios,
)
from resilience_auditor.config import Settings, load_settings
from resilience_auditor.models import Severity, TestCategory

SITES_YAML = """
sites:
  - id: s-1
    name: Test Hospital
    location: {latitude: 21.5, longitude: 39.2}
    infrastructure: {type: hospital, criticality: high}
    security:
      resilience_score: 71
      vulnerabilities:
        - {id: v-1, type: jamming, severity: critical, description: Open}
"""

class TempFileMixin:
    def write(self, name, text):
        path = os.path.join(self.tmp.name, name)
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        return path

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmp.cleanup()

class TestCatalog(TempFileMixin, unittest.TestCase):
    def test_bundled_catalogs(self):
        self.assertEqual(len(load_sites()), 12)
        tests = load_tests()
        self.assertEqual(len(tests), 11)
        self.assertEqual({t.category for t in tests}, set(TestCategory))
        self.assertEqual(len(load_demo_scenarios()), 3)

    def test_local_file(self):
        sites = load_sites(self.write("sites.yaml", SITES_YAML))
        self.assertEqual(len(sites), 1)
        site = sites[0]
        self.assertEqual(site.name, "Test Hospital")
        self.assertEqual(site.location.city, "Jeddah")
        self.assertEqual(site.security.vulnerabilities[0].severity, Severity.CRITICAL)
        self.assertEqual(site.security.vulnerabilities[0].status, "open")

    def test_bare_list(self):
        path = self.write("tests.yaml", "- {id: t, name: T, category: spoofing}\n")
        tests = load_tests(path)
        self.assertEqual(tests[0].estimated_duration, 30)
        self.assertEqual(tests[0].severity, Severity.MEDIUM)

    def test_missing_file(self):
        with self.assertRaises(DataLoadError):
            load_sites(os.path.join(self.tmp.name, "missing.yaml"))

    def test_malformed_yaml(self):
        with self.assertRaises(DataLoadError):
            load_sites(self.write("bad.yaml", "sites: [unclosed"))

    def test_invalid_entries(self):
        with self.assertRaises(DataLoadError):
            load_sites(self.write("nolat.yaml", "sites:\n  - {id: x, location: {}}\n"))
        with self.assertRaises(DataLoadError):
            load_sites(self.write("castle.yaml", "sites:\n  - {id: x, location: {latitude: 1, longitude: 2}, "
                                                 "infrastructure: {type: castle}}\n"))
        with self.assertRaises(DataLoadError):
            load_tests(self.write("cat.yaml", "tests:\n  - {id: x, category: telepathy}\n"))
        with self.assertRaises(DataLoadError):
            load_demo_scenarios(self.write("demo.yaml", "scenarios:\n  - {id: d, steps: [{action: dance}]}\n"))

    @patch('resilience_auditor.catalog.requests.get')
    def test_remote_catalog(self, mock_get):
        mock_response = Mock()
        mock_response.text = SITES_YAML
        mock_response.raise_for_status.return_value = None
        mock_get.return_value = mock_response

        sites = load_sites("https://data.example.org/sites.yaml", timeout=3)
        self.assertEqual(sites[0].id, "s-1")
        mock_get.assert_called_once_with("https://data.example.org/sites.yaml", timeout=3)

    @patch('resilience_auditor.catalog.requests.get')
    def test_remote_failure(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("refused")
        with self.assertRaises(DataLoadError):
            load_sites("http://data.example.org/sites.yaml")

class TestSettings(TempFileMixin, unittest.TestCase):
    def missing(self):
        return os.path.join(self.tmp.name, "none", "config.yaml")

    def test_defaults(self):
        with patch("resilience_auditor.config.default_config_path", return_value=self.missing()):
            settings = load_settings(env={})
        self.assertEqual(settings.port, 5000)
        self.assertEqual(settings.tick_interval, 1.0)
        self.assertIsNone(settings.sites_source)

    def test_file_then_env(self):
        path = self.write("config.yaml", "port: 8080\nseed: 4\nunknown_key: 1\n")
        settings = load_settings(path, env={"MCX_AUDITOR_PORT": "9000", "MCX_AUDITOR_TICK_INTERVAL": "0.5"})
        self.assertEqual(settings.port, 9000)
        self.assertEqual(settings.seed, 4)
        self.assertEqual(settings.tick_interval, 0.5)

    def test_data_url_wins(self):
        settings = Settings(sites_path="/tmp/sites.yaml", data_url="https://x/sites.yaml")
        self.assertEqual(settings.sites_source, "https://x/sites.yaml")

    def test_bad_values(self):
        with patch("resilience_auditor.config.default_config_path", return_value=self.missing()):
            with self.assertRaises(ValueError):
                load_settings(env={"MCX_AUDITOR_PORT": "eighty"})
        with self.assertRaises(ValueError):
            load_settings(self.write("list.yaml", "- 1\n"), env={})
        with self.assertRaises(ValueError):
            load_settings(os.path.join(self.tmp.name, "missing.yaml"), env={})

if __name__ == '__main__':
    unittest.main()
