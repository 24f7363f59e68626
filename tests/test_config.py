"""
Tests for bridge configuration loading.
"""

import os
import tempfile
import unittest

from munin_snmp.config import BridgeConfig, SourceSpec, load_config, parse_sources
from munin_snmp.errors import ConfigError


class TestSourceSpec(unittest.TestCase):
    """
    Test munin_plugins parsing.
    """

    def test_plain_source(self):
        """A bare plugin name has no field filter."""
        source = SourceSpec.parse("load")
        self.assertEqual(source.name, "load")
        self.assertIsNone(source.field)
        self.assertEqual(str(source), "load")

    def test_source_with_field(self):
        """'plugin:field' sets a field filter."""
        source = SourceSpec.parse(" cpu:user ")
        self.assertEqual(source.name, "cpu")
        self.assertEqual(source.field, "user")
        self.assertEqual(str(source), "cpu:user")

    def test_parse_sources_keeps_order(self):
        sources = parse_sources("load, cpu:user,memory")
        self.assertEqual([str(s) for s in sources], ["load", "cpu:user", "memory"])

    def test_empty_list_rejected(self):
        with self.assertRaises(ConfigError):
            parse_sources(" , ")

    def test_invalid_characters_rejected(self):
        """Source names are validated once, at startup."""
        for bad in ("lo ad", "cpu/x", "café", "cpu:"):
            with self.subTest(bad=bad):
                with self.assertRaises(ConfigError):
                    SourceSpec.parse(bad)


class TestBridgeConfig(unittest.TestCase):
    """
    Test value validation and defaults.
    """

    def test_defaults(self):
        config = BridgeConfig.from_values({})

        self.assertEqual(config.munin_host, "localhost")
        self.assertEqual(config.munin_port, 4949)
        self.assertEqual(config.base_oid, (1, 3, 6, 1, 4, 1, 123456, 100, 1, 1))
        self.assertEqual([s.name for s in config.sources], ["load", "cpu", "memory"])
        self.assertEqual(config.refresh_mode, "background")
        self.assertEqual(config.max_missed_refreshes, 0)
        self.assertIsNone(config.log_file)

    def test_invalid_oid(self):
        with self.assertRaises(ConfigError):
            BridgeConfig.from_values({"base_oid": ".1.3.x.1"})

    def test_invalid_port(self):
        with self.assertRaises(ConfigError):
            BridgeConfig.from_values({"munin_port": "abc"})
        with self.assertRaises(ConfigError):
            BridgeConfig.from_values({"snmp_port": "70000"})

    def test_invalid_ttl(self):
        with self.assertRaises(ConfigError):
            BridgeConfig.from_values({"cache_ttl": "0"})

    def test_invalid_refresh_mode(self):
        with self.assertRaises(ConfigError):
            BridgeConfig.from_values({"refresh_mode": "eager"})

    def test_repr_hides_community(self):
        config = BridgeConfig.from_values({"community": "s3cret"})
        self.assertNotIn("s3cret", repr(config))


class TestLoadConfig(unittest.TestCase):
    """
    Test configuration file loading and CLI precedence.
    """

    def setUp(self):
        """Write a temporary key=value configuration file."""
        self.temp_file = tempfile.NamedTemporaryFile(
            mode='w',
            suffix='.conf',
            delete=False,
        )
        self.temp_file.write(
            "# munin-snmp agent\n"
            "munin_host=munin.example.org\n"
            "munin_port=4950\n"
            "munin_plugins=load,df\n"
            "base_oid=.1.3.6.1.4.1.9.1\n"
            "pidfile=/tmp/munin-snmp-test.pid\n"
            "refresh_mode=lazy\n"
            "bogus_key=1\n"
        )
        self.temp_file.close()
        self.config_path = self.temp_file.name

    def tearDown(self):
        """Cleanup."""
        if os.path.exists(self.config_path):
            os.unlink(self.config_path)

    def test_file_values(self):
        config = load_config(self.config_path)

        self.assertEqual(config.munin_host, "munin.example.org")
        self.assertEqual(config.munin_port, 4950)
        self.assertEqual([s.name for s in config.sources], ["load", "df"])
        self.assertEqual(config.base_oid, (1, 3, 6, 1, 4, 1, 9, 1))
        self.assertEqual(config.refresh_mode, "lazy")
        # Not in the file: default
        self.assertEqual(config.cache_ttl, 60.0)

    def test_overrides_take_precedence(self):
        """CLI flags win over the file, None means 'not given'."""
        config = load_config(
            self.config_path,
            {"munin_port": "5000", "munin_host": None, "base_oid": "1.3.6.1.4.1.9.2"},
        )

        self.assertEqual(config.munin_port, 5000)
        self.assertEqual(config.munin_host, "munin.example.org")
        self.assertEqual(config.base_oid, (1, 3, 6, 1, 4, 1, 9, 2))

    def test_missing_explicit_file(self):
        with self.assertRaises(ConfigError):
            load_config(self.config_path + ".missing")


if __name__ == "__main__":
    unittest.main()
