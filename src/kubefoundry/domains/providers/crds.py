"""CRD definitions for inference providers."""

from kubefoundry.clients.base import CRDDefinition


class ProviderCRDs:
    """Custom resources emitted by the built-in providers."""

    # NVIDIA Dynamo
    DYNAMO_GRAPH_DEPLOYMENT = CRDDefinition(
        group="dynamo.nvidia.com",
        version="v1alpha1",
        plural="dynamographdeployments",
        kind="DynamoGraphDeployment",
    )

    # KubeRay
    RAY_SERVICE = CRDDefinition(
        group="ray.io",
        version="v1",
        plural="rayservices",
        kind="RayService",
    )

    # KAITO
    KAITO_WORKSPACE = CRDDefinition(
        group="kaito.sh",
        version="v1beta1",
        plural="workspaces",
        kind="Workspace",
    )

    KAITO_INFERENCE_SET = CRDDefinition(
        group="kaito.sh",
        version="v1alpha1",
        plural="inferencesets",
        kind="InferenceSet",
    )

    # Gateway API
    HTTP_ROUTE = CRDDefinition(
        group="gateway.networking.k8s.io",
        version="v1",
        plural="httproutes",
        kind="HTTPRoute",
    )
