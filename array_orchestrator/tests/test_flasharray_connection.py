import json
import unittest
from unittest import mock

import requests

from array_orchestrator.errors import ConfigurationError, ConflictError, RemoteOperationError
from array_orchestrator.flasharray.connection import ArrayConnection, authenticate, negotiate_rest_version
from array_orchestrator.models import ArrayCredentials
from array_orchestrator.registry import ConnectionRegistry


def response(status=200, body=None):
    resp = mock.Mock()
    resp.ok = status < 400
    resp.status_code = status
    resp.text = "" if body is None else json.dumps(body)
    resp.json.return_value = body
    return resp


class ArrayConnectionTests(unittest.TestCase):
    def setUp(self):
        self.session = mock.Mock()
        self.connection = ArrayConnection("fa-a.lab.local", "token", "1.19", session=self.session)

    def test_list_volumes(self):
        self.session.request.return_value = response(body=[
            {"name": "wld01-ds01", "serial": "1C0D5A1E0E3D4C2B00011CD0", "size": 1099511627776},
        ])
        volumes = self.connection.list_volumes()
        self.assertEqual(volumes[0].serial, "1C0D5A1E0E3D4C2B00011CD0")
        self.assertEqual(volumes[0].size_bytes, 1099511627776)

        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", "https://fa-a.lab.local/api/1.19/volume"))
        self.assertEqual(kwargs["timeout"], self.connection.timeout)

    def test_error_body_is_mapped(self):
        self.session.request.return_value = response(400, [{"msg": "Volume already exists.", "ctx": "wld01-ds01"}])
        with self.assertRaises(ConflictError) as ctx:
            self.connection.create_volume("wld01-ds01", 1024)
        self.assertEqual(ctx.exception.status_code, 400)

    def test_transport_failure_is_remote_error(self):
        self.session.request.side_effect = requests.exceptions.ConnectTimeout("timed out")
        with self.assertRaises(RemoteOperationError):
            self.connection.list_hosts()

    def test_delete_with_eradicate_issues_two_calls(self):
        self.session.request.return_value = response(body={"name": "wld01-ds01"})
        self.connection.delete_volume("wld01-ds01", eradicate=True)
        calls = self.session.request.call_args_list
        self.assertEqual(len(calls), 2)
        self.assertIsNone(calls[0][1]["json"])
        self.assertEqual(calls[1][1]["json"], {"eradicate": True})

    def test_create_host_needs_exactly_one_initiator_kind(self):
        with self.assertRaises(ConfigurationError):
            self.connection.create_host("esx01")
        with self.assertRaises(ConfigurationError):
            self.connection.create_host("esx01", iqns=["iqn.x"], wwns=["2100000e1e000001"])
        self.session.request.assert_not_called()

    def test_close_swallows_any_mapped_array_error(self):
        self.session.request.return_value = response(409, [{"msg": "Session already in use."}])
        self.connection.close()
        self.session.close.assert_called_once()

    def test_registry_disconnect_survives_conflicting_close(self):
        registry = ConnectionRegistry()
        registry.register(self.connection, default=True)
        self.session.request.return_value = response(409, [{"msg": "Session already in use."}])
        registry.disconnect(self.connection)
        self.assertEqual(len(registry), 0)

    def test_create_host_with_wwns(self):
        self.session.request.return_value = response(body={"name": "esx01", "wwn": ["2100000E1E000001"]})
        host = self.connection.create_host("esx01", wwns=["2100000e1e000001"])
        self.assertEqual(host.wwns, ["2100000E1E000001"])
        self.assertEqual(self.session.request.call_args[1]["json"], {"wwnlist": ["2100000e1e000001"]})

    def test_list_hosts_reads_group_membership(self):
        self.session.request.return_value = response(body=[
            {"name": "esx01", "wwn": ["2100000E1E000001"], "iqn": [], "hgroup": "hg-prod"},
            {"name": "esx02", "wwn": [], "iqn": ["iqn.1998-01.com.vmware:esx02"], "hgroup": None},
        ])
        hosts = self.connection.list_hosts()
        self.assertEqual(hosts[0].host_group, "hg-prod")
        self.assertIsNone(hosts[1].host_group)

    def test_identity_is_cached(self):
        self.session.request.return_value = response(body={"id": "abc", "array_name": "fa-a", "version": "6.1.0"})
        self.assertIsNone(self.connection.serial)
        self.connection.get_array_identity()
        self.connection.get_array_identity()
        self.assertEqual(self.connection.serial, "abc")
        self.assertEqual(self.session.request.call_count, 1)
        self.assertEqual(self.connection.get_array_identity().version_tuple, (6, 1, 0))


class AuthenticateTests(unittest.TestCase):
    def test_negotiate_prefers_configured_version(self):
        session = mock.Mock()
        session.get.return_value = response(body={"version": ["1.0", "1.9", "1.17", "1.19", "2.0"]})
        self.assertEqual(negotiate_rest_version("fa-a", session, "1.19"), "1.19")
        self.assertEqual(negotiate_rest_version("fa-a", session, "1.21"), "1.19")

        session.get.return_value = response(body={"version": ["1.0", "1.9", "1.17", "2.0"]})
        self.assertEqual(negotiate_rest_version("fa-a", session, "1.21"), "1.17")

    def test_credentials_are_required(self):
        with self.assertRaises(ConfigurationError):
            authenticate("fa-a", ArrayCredentials(username="pureuser"))

    @mock.patch("array_orchestrator.flasharray.connection.requests.Session")
    def test_username_password_exchanged_for_token(self, session_cls):
        session = session_cls.return_value
        session.get.return_value = response(body={"version": ["1.19"]})
        session.request.side_effect = [
            response(body={"api_token": "generated-token"}),
            response(body={"username": "pureuser"}),
            response(body={"id": "2dcf29ad-6aca-4913-b62e-a15875c6635f", "array_name": "fa-a", "version": "6.1.0"}),
        ]

        connection = authenticate("fa-a", ArrayCredentials(username="pureuser", password="secret"))

        self.assertEqual(connection.api_token, "generated-token")
        self.assertEqual(connection.rest_version, "1.19")
        self.assertEqual(connection.serial, "2dcf29ad-6aca-4913-b62e-a15875c6635f")
        paths = [c[0][1].rsplit("/api/1.19/", 1)[-1] for c in session.request.call_args_list]
        self.assertEqual(paths, ["auth/apitoken", "auth/session", "array"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
