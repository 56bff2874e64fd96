import unittest
from unittest import mock

from array_orchestrator.errors import ConfigurationError, NotConfiguredError, NotFoundError
from array_orchestrator.models import ArrayCredentials
from array_orchestrator.registry import ConnectionRegistry

from fakes import FakeArray


class ConnectionRegistryTests(unittest.TestCase):
    def setUp(self):
        self.registry = ConnectionRegistry()
        self.array_a = FakeArray("10.0.0.5", "2DCF29AD-6ACA-4913-B62E-A15875C6635F")
        self.array_b = FakeArray("10.0.0.6", "9a1b2c3d-0000-4913-b62e-a15875c6635f")

    def test_register_requires_exactly_one_role(self):
        with self.assertRaises(ConfigurationError):
            self.registry.register(self.array_a, default=True, non_default=True)
        with self.assertRaises(ConfigurationError):
            self.registry.register(self.array_a)
        self.assertEqual(len(self.registry), 0)

    def test_default_role_sets_default(self):
        self.registry.register(self.array_a, default=True)
        self.assertIs(self.registry.default(), self.array_a)

    def test_non_default_role_leaves_default_alone(self):
        self.registry.register(self.array_a, non_default=True)
        with self.assertRaises(NotConfiguredError):
            self.registry.default()
        self.assertEqual(self.registry.all(), [self.array_a])

    def test_connection_added_once(self):
        self.registry.register(self.array_a, non_default=True)
        self.registry.register(self.array_a, default=True)
        self.assertEqual(len(self.registry), 1)
        self.assertIs(self.registry.default(), self.array_a)

    def test_all_fails_when_empty(self):
        with self.assertRaises(NotConfiguredError):
            self.registry.all()

    def test_connect_then_default_returns_endpoint(self):
        connector = mock.Mock(side_effect=lambda endpoint, credentials: FakeArray(endpoint, "serial-1"))
        self.registry.connect("10.0.0.5", ArrayCredentials(api_token="token"), default=True, connector=connector)
        self.assertEqual(self.registry.default().endpoint, "10.0.0.5")

    def test_connect_validates_role_before_authenticating(self):
        connector = mock.Mock()
        with self.assertRaises(ConfigurationError):
            self.registry.connect("10.0.0.5", ArrayCredentials(api_token="token"), connector=connector)
        connector.assert_not_called()

    def test_resolve_by_id_is_case_insensitive(self):
        self.registry.register(self.array_a, non_default=True)
        self.registry.register(self.array_b, non_default=True)
        self.assertIs(
            self.registry.resolve_by_id("2dcf29ad-6aca-4913-b62e-a15875c6635f"),
            self.array_a,
        )
        self.assertIs(
            self.registry.resolve_by_id("9A1B2C3D-0000-4913-B62E-A15875C6635F", candidates=[self.array_b]),
            self.array_b,
        )
        with self.assertRaises(NotFoundError):
            self.registry.resolve_by_id("unknown")

    def test_disconnect_clears_default(self):
        self.registry.register(self.array_a, default=True)
        self.registry.disconnect(self.array_a)
        self.assertTrue(self.array_a.closed)
        with self.assertRaises(NotConfiguredError):
            self.registry.default()


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
