"""Kubernetes manifest and chart-values builders.

Everything here returns plain dicts; callers hand them to
``ResourceConvergence.apply`` or dump them to a Helm values file.
"""

from __future__ import annotations

import base64
from pathlib import Path
from typing import Any

import yaml

ECHO_IMAGE = "ealen/echo-server:latest"
SSL_REDIRECT_ANNOTATIONS = {
    "nginx.ingress.kubernetes.io/ssl-redirect": "true",
    "nginx.ingress.kubernetes.io/force-ssl-redirect": "true",
}

# Server-owned metadata dropped when copying an object to another namespace
SERVER_METADATA_FIELDS = (
    "uid",
    "resourceVersion",
    "creationTimestamp",
    "managedFields",
    "selfLink",
    "ownerReferences",
)


def write_values(path: Path, values: dict[str, Any]) -> Path:
    """Write Helm values to a YAML file."""
    with open(path, "w") as f:
        yaml.dump(values, f, default_flow_style=False, sort_keys=False)
    return path


def build_namespace(name: str) -> dict[str, Any]:
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}}


def build_tls_secret(name: str, namespace: str, cert_pem: bytes, key_pem: bytes) -> dict[str, Any]:
    """Build a kubernetes.io/tls Secret."""
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "kubernetes.io/tls",
        "metadata": {"name": name, "namespace": namespace},
        "data": {
            "tls.crt": base64.b64encode(cert_pem).decode("ascii"),
            "tls.key": base64.b64encode(key_pem).decode("ascii"),
        },
    }


def retarget(document: dict[str, Any], namespace: str) -> dict[str, Any]:
    """Copy an object fetched from the API server into another namespace."""
    metadata = {
        key: value
        for key, value in document.get("metadata", {}).items()
        if key not in SERVER_METADATA_FIELDS
    }
    annotations = dict(metadata.get("annotations") or {})
    annotations.pop("kubectl.kubernetes.io/last-applied-configuration", None)
    if annotations:
        metadata["annotations"] = annotations
    else:
        metadata.pop("annotations", None)
    metadata["namespace"] = namespace

    copied = {key: value for key, value in document.items() if key not in ("metadata", "status")}
    copied["metadata"] = metadata
    return copied


def build_echo_app(namespace: str) -> list[dict[str, Any]]:
    """Build the echo test deployment and service."""
    deployment = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "echo", "namespace": namespace, "labels": {"app": "echo"}},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": {"app": "echo"}},
            "template": {
                "metadata": {"labels": {"app": "echo"}},
                "spec": {
                    "containers": [
                        {
                            "name": "echo-server",
                            "image": ECHO_IMAGE,
                            "ports": [{"containerPort": 80}],
                        }
                    ],
                },
            },
        },
    }

    service = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": "echo", "namespace": namespace, "labels": {"app": "echo"}},
        "spec": {
            "selector": {"app": "echo"},
            "ports": [{"port": 80, "targetPort": 80}],
        },
    }

    return [deployment, service]


def build_ingress(
    name: str,
    namespace: str,
    hostname: str,
    service: str,
    port: int,
    tls_secret: str,
    annotations: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Build a TLS-terminating nginx Ingress for one host."""
    metadata: dict[str, Any] = {"name": name, "namespace": namespace}
    if annotations:
        metadata["annotations"] = dict(annotations)
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": metadata,
        "spec": {
            "ingressClassName": "nginx",
            "tls": [{"hosts": [hostname], "secretName": tls_secret}],
            "rules": [
                {
                    "host": hostname,
                    "http": {
                        "paths": [
                            {
                                "path": "/",
                                "pathType": "Prefix",
                                "backend": {
                                    "service": {"name": service, "port": {"number": port}}
                                },
                            }
                        ]
                    },
                }
            ],
        },
    }


def build_nginx_values(namespace: str, tls_secret: str) -> dict[str, Any]:
    """ingress-nginx chart values for Docker Desktop."""
    return {
        "controller": {
            "service": {"type": "LoadBalancer"},
            "hostPort": {"enabled": True, "ports": {"http": 80, "https": 443}},
            "nodeSelector": {"kubernetes.io/os": "linux"},
            "extraArgs": {"default-ssl-certificate": f"{namespace}/{tls_secret}"},
        }
    }


def _volume_claim(size: str) -> dict[str, Any]:
    return {
        "volumeClaimTemplate": {
            "spec": {
                "storageClassName": "hostpath",
                "accessModes": ["ReadWriteOnce"],
                "resources": {"requests": {"storage": size}},
            }
        }
    }


def build_prometheus_values(
    grafana_host: str, admin_password: str, retention: str
) -> dict[str, Any]:
    """kube-prometheus-stack chart values."""
    dashboards = {
        "kubernetes-cluster": 7249,
        "kubernetes-pods": 6417,
        "nginx-ingress": 9614,
    }
    return {
        "prometheus": {
            "prometheusSpec": {
                "retention": retention,
                "storageSpec": _volume_claim("10Gi"),
                "additionalScrapeConfigs": [
                    {
                        "job_name": "kubernetes-pods",
                        "kubernetes_sd_configs": [{"role": "pod"}],
                        "relabel_configs": [
                            {
                                "source_labels": [
                                    "__meta_kubernetes_pod_annotation_prometheus_io_scrape"
                                ],
                                "action": "keep",
                                "regex": True,
                            },
                            {
                                "source_labels": [
                                    "__meta_kubernetes_pod_annotation_prometheus_io_path"
                                ],
                                "action": "replace",
                                "target_label": "__metrics_path__",
                                "regex": "(.+)",
                            },
                        ],
                    }
                ],
            }
        },
        "grafana": {
            "enabled": True,
            "adminPassword": admin_password,
            "persistence": {"enabled": True, "storageClassName": "hostpath", "size": "5Gi"},
            "grafana.ini": {
                "server": {"root_url": f"https://{grafana_host}/"},
                "security": {"allow_embedding": True},
            },
            "dashboardProviders": {
                "dashboardproviders.yaml": {
                    "apiVersion": 1,
                    "providers": [
                        {
                            "name": "default",
                            "orgId": 1,
                            "folder": "",
                            "type": "file",
                            "disableDeletion": False,
                            "editable": True,
                            "options": {"path": "/var/lib/grafana/dashboards/default"},
                        }
                    ],
                }
            },
            "dashboards": {
                "default": {
                    name: {"gnetId": gnet_id, "revision": 1, "datasource": "Prometheus"}
                    for name, gnet_id in dashboards.items()
                }
            },
        },
        "alertmanager": {
            "enabled": True,
            "alertmanagerSpec": {"storage": _volume_claim("2Gi")},
        },
        "kubeStateMetrics": {"enabled": True},
        "nodeExporter": {"enabled": True},
        "prometheusOperator": {"enabled": True},
    }


def build_jaeger_instance(namespace: str, name: str = "jaeger-prod") -> dict[str, Any]:
    """All-in-one Jaeger custom resource with in-memory storage."""
    return {
        "apiVersion": "jaegertracing.io/v1",
        "kind": "Jaeger",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "strategy": "allInOne",
            "allInOne": {
                "options": {"log-level": "info"},
                "resources": {
                    "limits": {"cpu": "500m", "memory": "512Mi"},
                    "requests": {"cpu": "100m", "memory": "128Mi"},
                },
            },
            "storage": {"type": "memory", "options": {"memory": {"max-traces": 50000}}},
            "ingress": {"enabled": False},
        },
    }


def build_openssl_config(apex: str) -> str:
    """OpenSSL request config with wildcard + apex SANs."""
    return "\n".join(
        [
            "[req]",
            "default_bits = 2048",
            "prompt = no",
            "default_md = sha256",
            "req_extensions = req_ext",
            "distinguished_name = dn",
            "",
            "[dn]",
            "C = US",
            "ST = Local",
            "L = Local",
            "O = Local",
            "OU = Local",
            f"CN = *.{apex}",
            "",
            "[req_ext]",
            "subjectAltName = @alt_names",
            "",
            "[alt_names]",
            f"DNS.1 = {apex}",
            f"DNS.2 = *.{apex}",
            "",
        ]
    )
