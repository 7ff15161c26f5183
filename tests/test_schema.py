"""Tests for the declarative attribute schema."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from armprovider.schema import (
    Block,
    Location,
    ResourceConfig,
    ResourceGroupName,
    Tags,
    attribute,
    construct_state,
    describe_schema,
    field_flags,
    fields_with_flag,
    normalize_location,
)
from armprovider.service_fabric_managed_cluster import NodeType, ServiceFabricManagedCluster
from armprovider.stream_analytics_job import StreamAnalyticsJob


class Widget(Block):
    size: int
    serial: str | None = attribute(None, read_only=True)


class Gadget(ResourceConfig):
    name: str = attribute(force_new=True)
    resource_group_name: ResourceGroupName = attribute(force_new=True)
    location: Location = attribute(force_new=True)
    secret: str | None = attribute(None, sensitive=True)
    mode: str = "auto"
    widget: list[Widget] = []
    tags: Tags = {}


class TestAttributeFlags:
    """Tests for attribute() behaviour flags."""

    def test_flags(self) -> None:
        """Test that declared flags are reported."""
        flags = field_flags(Gadget, "name")

        assert flags["force_new"] is True
        assert flags["computed"] is False

    def test_read_only_implies_computed(self) -> None:
        """Test that read-only attributes are also computed."""
        flags = field_flags(Widget, "serial")

        assert flags["read_only"] is True
        assert flags["computed"] is True

    def test_fields_with_flag(self) -> None:
        """Test listing fields by flag in declaration order."""
        assert fields_with_flag(Gadget, "force_new") == ["name", "resource_group_name", "location"]
        assert fields_with_flag(Gadget, "sensitive") == ["secret"]

    def test_plain_field_has_no_flags(self) -> None:
        """Test that ordinary fields carry no flags."""
        assert not any(field_flags(Gadget, "mode").values())


class TestSharedTypes:
    """Tests for shared attribute types."""

    def test_location_normalized(self) -> None:
        """Test that display names normalize to region names."""
        assert normalize_location("West Europe") == "westeurope"
        gadget = Gadget(name="g", resource_group_name="rg", location="North Europe")
        assert gadget.location == "northeurope"

    @pytest.mark.parametrize("value", ["", "rg.", "rg/with/slash", "x" * 91])
    def test_invalid_resource_group_names(self, value: str) -> None:
        """Test resource group name validation."""
        with pytest.raises(ValidationError):
            Gadget(name="g", resource_group_name=value, location="westeurope")

    def test_valid_resource_group_name(self) -> None:
        """Test that parentheses, dots and dashes are accepted."""
        gadget = Gadget(name="g", resource_group_name="rg-(test).v1", location="westeurope")
        assert gadget.resource_group_name == "rg-(test).v1"

    def test_too_many_tags(self) -> None:
        """Test the tag count limit."""
        tags = {f"k{i}": "v" for i in range(51)}
        with pytest.raises(ValidationError) as exc_info:
            Gadget(name="g", resource_group_name="rg", location="westeurope", tags=tags)

        assert "maximum of 50 tags" in str(exc_info.value)

    def test_tag_value_too_long(self) -> None:
        """Test the tag value length limit."""
        with pytest.raises(ValidationError):
            Gadget(
                name="g", resource_group_name="rg", location="westeurope", tags={"k": "v" * 257}
            )


class TestBlocks:
    """Tests for block validation and dumping."""

    def test_unknown_attribute_rejected(self) -> None:
        """Test that unknown attributes are rejected."""
        with pytest.raises(ValidationError):
            Gadget(name="g", resource_group_name="rg", location="westeurope", colour="red")

    def test_read_only_attribute_rejected(self) -> None:
        """Test that read-only attributes cannot be supplied."""
        with pytest.raises(ValidationError) as exc_info:
            Widget(size=1, serial="abc")

        assert "computed attributes cannot be set: serial" in str(exc_info.value)

    def test_read_only_none_accepted(self) -> None:
        """Test that an explicit null read-only value is tolerated."""
        assert Widget(size=1, serial=None).serial is None

    def test_desired_values_strips_read_only(self) -> None:
        """Test that read-only attributes are dropped from nested blocks."""
        gadget = Gadget(
            name="g", resource_group_name="rg", location="westeurope", widget=[{"size": 2}]
        )

        values = gadget.desired_values()

        assert values["widget"] == [{"size": 2}]
        assert values["mode"] == "auto"

    def test_desired_values_exclude_unset(self) -> None:
        """Test that only supplied top-level attributes are dumped."""
        gadget = Gadget(name="g", resource_group_name="rg", location="westeurope", secret="s")

        values = gadget.desired_values(exclude_unset=True)

        assert set(values) == {"name", "resource_group_name", "location", "secret"}

    def test_supplied_block_dumped_in_full(self) -> None:
        """Test that defaults inside a supplied block are kept."""
        cluster = ServiceFabricManagedCluster(
            name="sfmc1",
            resource_group_name="rg",
            location="westeurope",
            username="admin",
            node_type=[
                {
                    "name": "test1",
                    "data_disk_size_gb": 130,
                    "application_port_range": "7000-9000",
                    "ephemeral_port_range": "10000-20000",
                    "vm_size": "Standard_DS2_v2",
                    "vm_image_publisher": "MicrosoftWindowsServer",
                    "vm_image_offer": "WindowsServer",
                    "vm_image_sku": "2016-Datacenter",
                    "vm_image_version": "latest",
                    "vm_instance_count": 5,
                }
            ],
        )

        values = cluster.desired_values(exclude_unset=True)

        assert values["node_type"][0]["data_disk_type"] == "Standard_LRS"
        assert values["node_type"][0]["primary"] is False
        assert "id" not in values["node_type"][0]


class TestDescribeSchema:
    """Tests for schema description."""

    def test_job_schema(self) -> None:
        """Test the Stream Analytics Job attribute schema."""
        schema = describe_schema(StreamAnalyticsJob)

        assert schema["name"].required and schema["name"].force_new
        assert schema["compatibility_level"].computed
        assert schema["compatibility_level"].allowed_values == ["1.0", "1.1"]
        assert schema["events_out_of_order_policy"].default == "Adjust"
        assert schema["events_late_arrival_max_delay_in_seconds"].default == 5
        assert schema["job_id"].computed and not schema["job_id"].optional
        assert schema["identity"].type == "block"
        assert schema["identity"].max_items == 1
        assert schema["tags"].type == "map"
        assert schema["tags"].default is None

    def test_cluster_schema(self) -> None:
        """Test nested blocks in the cluster schema."""
        schema = describe_schema(ServiceFabricManagedCluster)

        assert schema["password"].sensitive
        assert schema["sku"].default == "Basic"
        assert schema["sku"].force_new
        assert schema["node_type"].type == "list"
        node_type = schema["node_type"].block
        assert node_type is not None
        assert node_type["data_disk_size_gb"].type == "int"
        assert node_type["primary"].type == "bool"
        assert node_type["id"].computed

    def test_to_dict(self) -> None:
        """Test the serializable schema form."""
        data = describe_schema(Gadget)["name"].to_dict()

        assert data == {"type": "string", "required": True, "force_new": True}


class TestConstructState:
    """Tests for building state from API values."""

    def test_nested_blocks_constructed(self) -> None:
        """Test that nested dicts become block models."""
        state = construct_state(
            Gadget,
            {"name": "g", "widget": [{"size": 1, "serial": "abc"}], "unknown": "ignored"},
        )

        assert isinstance(state.widget[0], Widget)
        assert state.widget[0].serial == "abc"
        assert not hasattr(state, "unknown")

    def test_remote_values_not_validated(self) -> None:
        """Test that values outside validation rules are kept as reported."""
        state = construct_state(NodeType, {"name": "test1", "data_disk_size_gb": 0})

        assert state.data_disk_size_gb == 0
