"""Tests for shoot state loading and the migration helpers."""

import pytest
from kubernetes.client.exceptions import ApiException

from extension_driver import load_shoot_state, migrate_resource

from conftest import NAMESPACE


class TestLoadShootState:
    """Test cases for load_shoot_state."""

    @pytest.mark.asyncio
    async def test_load(self, mock_custom_objects):
        """Test the snapshot spec is parsed."""
        mock_custom_objects.get_namespaced_custom_object.return_value = {
            "kind": "ShootState",
            "spec": {
                "extensions": [
                    {"kind": "Infrastructure", "name": "test", "state": {"vpcID": "vpc-1"}},
                ],
            },
        }

        shoot_state = await load_shoot_state(mock_custom_objects, "garden-dev", "test")

        mock_custom_objects.get_namespaced_custom_object.assert_called_once_with(
            "core.gardener.cloud", "v1beta1", "garden-dev", "shootstates", "test"
        )
        assert shoot_state.get("Infrastructure", "test").state == {"vpcID": "vpc-1"}

    @pytest.mark.asyncio
    async def test_missing_snapshot_is_empty(self, mock_custom_objects):
        """Test a missing snapshot yields an empty state."""
        mock_custom_objects.get_namespaced_custom_object.side_effect = ApiException(status=404)

        shoot_state = await load_shoot_state(mock_custom_objects, "garden-dev", "test")

        assert shoot_state.extensions == []

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, mock_custom_objects):
        """Test transport errors are raised."""
        mock_custom_objects.get_namespaced_custom_object.side_effect = ApiException(status=503)

        with pytest.raises(ApiException):
            await load_shoot_state(mock_custom_objects, "garden-dev", "test")

    @pytest.mark.asyncio
    async def test_custom_group(self, mock_custom_objects):
        """Test group, version and plural can be overridden."""
        mock_custom_objects.get_namespaced_custom_object.return_value = {"spec": {}}

        await load_shoot_state(mock_custom_objects, "ns", "test", "example.com", "v1", "states")

        mock_custom_objects.get_namespaced_custom_object.assert_called_once_with(
            "example.com", "v1", "ns", "states", "test"
        )


class TestMigrateResource:
    """Test cases for migrate_resource."""

    @pytest.mark.asyncio
    async def test_absent(self, ext_client, settings, clock):
        """Test migrating a missing resource returns None."""
        result = await migrate_resource(
            ext_client, "Extension", "extensions", NAMESPACE, "test", clock, settings
        )

        assert result is None
