"""Azure API Mock for integration testing.

In-memory implementations of the Azure management clients the provider
uses, so reconcilers can be exercised end to end without Azure connectivity.

Key Features:
- REST-shaped resource state with SDK-model-like responses
- Long-running operation pollers that can be stalled or failed
- Per-operation error injection and a call log for assertions
- Managed Identity simulation

Usage:
    from azure_mock import MockAzureContext

    with MockAzureContext() as ctx:
        client = ctx.stream_analytics_client(SUBSCRIPTION_ID)
        reconciler = StreamAnalyticsJobResource(client, SUBSCRIPTION_ID)
        reconciler.create_or_update(desired)

        assert ctx.state.resource_count == 1
"""

from .context import MockAzureContext, mock_azure_context
from .credential import MockManagedIdentityCredential, create_mock_credential
from .resources import MockCall, MockLROPoller, MockModel, MockResourceState, to_model
from .service_fabric import MockServiceFabricClient
from .stream_analytics import MockStreamAnalyticsClient

__all__ = [
    "MockAzureContext",
    "MockCall",
    "MockLROPoller",
    "MockManagedIdentityCredential",
    "MockModel",
    "MockResourceState",
    "MockServiceFabricClient",
    "MockStreamAnalyticsClient",
    "create_mock_credential",
    "mock_azure_context",
    "to_model",
]
