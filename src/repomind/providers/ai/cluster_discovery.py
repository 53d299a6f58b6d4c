import os

from pydantic import BaseModel, Field

DEFAULT_CLUSTER_AI_SERVICE = "mcp-api-server"
DEFAULT_CLUSTER_AI_NAMESPACE = "ai-infrastructure"
DEFAULT_CLUSTER_AI_PORT = "8000"
DEFAULT_CLUSTER_AI_ENDPOINT = "https://api.askcollections.com"
DEFAULT_CLUSTER_AI_PATH = "/mcp"


class ClusterAIConfig(BaseModel):
    base_url: str = Field(description="The root URL of the cluster AI service, without the API version.")
    is_internal: bool = Field(description="Whether the service is reached through its in-cluster service DNS name.")
    service_name: str = ""
    namespace: str = ""


def is_running_in_cluster() -> bool:
    return bool(os.getenv("KUBERNETES_SERVICE_HOST") and os.getenv("KUBERNETES_SERVICE_PORT"))


def get_cluster_ai_service() -> str:
    return os.getenv("CLUSTER_AI_SERVICE") or DEFAULT_CLUSTER_AI_SERVICE


def get_cluster_ai_namespace() -> str:
    return os.getenv("CLUSTER_AI_NAMESPACE") or DEFAULT_CLUSTER_AI_NAMESPACE


def get_cluster_ai_endpoint() -> str:
    return os.getenv("CLUSTER_AI_ENDPOINT") or DEFAULT_CLUSTER_AI_ENDPOINT


def get_cluster_ai_path() -> str:
    return os.getenv("CLUSTER_AI_PATH") or DEFAULT_CLUSTER_AI_PATH


def get_cluster_ai_config() -> ClusterAIConfig:
    """Describe how the cluster AI service is reached from this process.

    An explicit `CLUSTER_AI_SERVICE_URL` is treated as external access. Inside Kubernetes the service DNS name is used,
    otherwise the public ingress.
    """

    if service_url := os.getenv("CLUSTER_AI_SERVICE_URL"):
        return ClusterAIConfig(base_url=service_url, is_internal=False)

    if is_running_in_cluster():
        service_name: str = get_cluster_ai_service()
        namespace: str = get_cluster_ai_namespace()
        port: str = os.getenv("CLUSTER_AI_PORT") or DEFAULT_CLUSTER_AI_PORT

        return ClusterAIConfig(
            base_url=f"http://{service_name}.{namespace}.svc.cluster.local:{port}{get_cluster_ai_path()}",
            is_internal=True,
            service_name=service_name,
            namespace=namespace,
        )

    return ClusterAIConfig(base_url=f"{get_cluster_ai_endpoint()}{get_cluster_ai_path()}", is_internal=False)


def get_cluster_ai_health_url() -> str:
    base_url: str = get_cluster_ai_config().base_url

    if (index := base_url.find("/v1/")) != -1:
        base_url = base_url[:index]

    return f"{base_url.rstrip('/')}/health"
