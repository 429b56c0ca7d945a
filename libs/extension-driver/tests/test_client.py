"""Tests for ExtensionResourceClient."""

import pytest
from kubernetes.client.exceptions import ApiException

from extension_driver import (
    ExtensionResource,
    ExtensionResourceClient,
    TypeMismatchError,
    create_merge_patch,
)

from conftest import GROUP, NAMESPACE, VERSION, extension_object


class TestCreateMergePatch:
    """Test cases for create_merge_patch."""

    def test_no_changes(self):
        """Test identical objects produce an empty patch."""
        obj = {"a": 1, "b": {"c": 2}}
        assert create_merge_patch(obj, dict(obj)) == {}

    def test_nested_change(self):
        """Test only changed nested keys are patched."""
        original = {"metadata": {"annotations": {"a": "1"}, "name": "x"}}
        modified = {"metadata": {"annotations": {"a": "1", "b": "2"}, "name": "x"}}

        assert create_merge_patch(original, modified) == {"metadata": {"annotations": {"b": "2"}}}

    def test_removed_key_is_null(self):
        """Test removed keys map to None."""
        assert create_merge_patch({"a": 1, "b": 2}, {"a": 1}) == {"b": None}

    def test_lists_are_replaced(self):
        """Test lists are replaced as a whole."""
        assert create_merge_patch({"a": [1, 2]}, {"a": [1]}) == {"a": [1]}


class TestExtensionResourceClient:
    """Test cases for ExtensionResourceClient against the API surface."""

    @pytest.fixture
    def resource(self):
        return ExtensionResource.from_dict(extension_object("Extension", "test"))

    @pytest.mark.asyncio
    async def test_get(self, mock_custom_objects):
        """Test getting a resource."""
        mock_custom_objects.get_namespaced_custom_object.return_value = extension_object("Extension", "test")
        client = ExtensionResourceClient(mock_custom_objects, GROUP, VERSION)

        result = await client.get("Extension", "extensions", NAMESPACE, "test")

        mock_custom_objects.get_namespaced_custom_object.assert_called_once_with(
            GROUP, VERSION, NAMESPACE, "extensions", "test"
        )
        assert result.name == "test"

    @pytest.mark.asyncio
    async def test_get_not_found(self, mock_custom_objects):
        """Test not found maps to None."""
        mock_custom_objects.get_namespaced_custom_object.side_effect = ApiException(status=404)
        client = ExtensionResourceClient(mock_custom_objects, GROUP, VERSION)

        assert await client.get("Extension", "extensions", NAMESPACE, "test") is None

    @pytest.mark.asyncio
    async def test_get_other_errors_propagate(self, mock_custom_objects):
        """Test other API errors are raised unchanged."""
        mock_custom_objects.get_namespaced_custom_object.side_effect = ApiException(status=429)
        client = ExtensionResourceClient(mock_custom_objects, GROUP, VERSION)

        with pytest.raises(ApiException) as exc_info:
            await client.get("Extension", "extensions", NAMESPACE, "test")

        assert exc_info.value.status == 429

    @pytest.mark.asyncio
    async def test_get_wrong_kind(self, mock_custom_objects):
        """Test an object of another kind is rejected."""
        mock_custom_objects.get_namespaced_custom_object.return_value = extension_object("Worker", "test")
        client = ExtensionResourceClient(mock_custom_objects, GROUP, VERSION)

        with pytest.raises(TypeMismatchError):
            await client.get("Extension", "extensions", NAMESPACE, "test")

    @pytest.mark.asyncio
    async def test_get_not_an_object(self, mock_custom_objects):
        """Test a non-dict response is rejected."""
        mock_custom_objects.get_namespaced_custom_object.return_value = ["unexpected"]
        client = ExtensionResourceClient(mock_custom_objects, GROUP, VERSION)

        with pytest.raises(TypeMismatchError):
            await client.get("Extension", "extensions", NAMESPACE, "test")

    @pytest.mark.asyncio
    async def test_create_does_not_send_status(self, mock_custom_objects, resource):
        """Test status is stripped from the create body."""
        mock_custom_objects.create_namespaced_custom_object.return_value = extension_object("Extension", "test")
        client = ExtensionResourceClient(mock_custom_objects, GROUP, VERSION)

        await client.create(resource, "extensions")

        args = mock_custom_objects.create_namespaced_custom_object.call_args.args
        assert args[:4] == (GROUP, VERSION, NAMESPACE, "extensions")
        assert "status" not in args[4]
        assert args[4]["kind"] == "Extension"

    @pytest.mark.asyncio
    async def test_patch_status(self, mock_custom_objects, resource):
        """Test status is written through the status subresource."""
        mock_custom_objects.patch_namespaced_custom_object_status.return_value = extension_object(
            "Extension", "test", status={"state": {"a": 1}}
        )
        client = ExtensionResourceClient(mock_custom_objects, GROUP, VERSION)

        result = await client.patch_status(resource, "extensions", {"state": {"a": 1}})

        mock_custom_objects.patch_namespaced_custom_object_status.assert_called_once_with(
            GROUP, VERSION, NAMESPACE, "extensions", "test", {"status": {"state": {"a": 1}}}
        )
        assert result.status.state == {"a": 1}

    @pytest.mark.asyncio
    async def test_patch_from_without_changes(self, mock_custom_objects, resource):
        """Test no request is sent when nothing changed."""
        client = ExtensionResourceClient(mock_custom_objects, GROUP, VERSION)

        result = await client.patch_from(resource, resource.copy_resource(), "extensions")

        mock_custom_objects.patch_namespaced_custom_object.assert_not_called()
        assert result.name == "test"

    @pytest.mark.asyncio
    async def test_patch_from_ignores_status(self, mock_custom_objects, resource):
        """Test status changes are not part of the patch."""
        mock_custom_objects.patch_namespaced_custom_object.return_value = extension_object("Extension", "test")
        client = ExtensionResourceClient(mock_custom_objects, GROUP, VERSION)
        modified = resource.copy_resource()
        modified.metadata.annotations["a"] = "b"
        modified.status.observed_generation = 5

        await client.patch_from(resource, modified, "extensions")

        body = mock_custom_objects.patch_namespaced_custom_object.call_args.args[5]
        assert body == {"metadata": {"annotations": {"a": "b"}}}

    @pytest.mark.asyncio
    async def test_delete_not_found(self, mock_custom_objects):
        """Test deleting a missing resource returns False."""
        mock_custom_objects.delete_namespaced_custom_object.side_effect = ApiException(status=404)
        client = ExtensionResourceClient(mock_custom_objects, GROUP, VERSION)

        assert await client.delete("Extension", "extensions", NAMESPACE, "test") is False

    @pytest.mark.asyncio
    async def test_delete(self, mock_custom_objects):
        """Test deleting a resource."""
        client = ExtensionResourceClient(mock_custom_objects, GROUP, VERSION)

        assert await client.delete("Extension", "extensions", NAMESPACE, "test") is True
        mock_custom_objects.delete_namespaced_custom_object.assert_called_once_with(
            GROUP, VERSION, NAMESPACE, "extensions", "test"
        )

    @pytest.mark.asyncio
    async def test_list_with_labels(self, mock_custom_objects):
        """Test listing passes a label selector and tolerates items without kind."""
        item = extension_object("Extension", "a")
        del item["kind"]
        mock_custom_objects.list_namespaced_custom_object.return_value = {"items": [item]}
        client = ExtensionResourceClient(mock_custom_objects, GROUP, VERSION)

        result = await client.list("Extension", "extensions", NAMESPACE, labels={"a": "b", "c": "d"})

        kwargs = mock_custom_objects.list_namespaced_custom_object.call_args.kwargs
        assert kwargs["label_selector"] == "a=b,c=d"
        assert [r.name for r in result] == ["a"]
        assert result[0].kind == "Extension"
