from .gateway import ClusterGateway
from .executor import KubectlExecutor, ExecResult, check

__all__ = ["ClusterGateway", "KubectlExecutor", "ExecResult", "check"]
