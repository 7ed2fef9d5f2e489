"""Well-known names, versions, and upstream locations for GreptimeDB artifacts."""

from __future__ import annotations

# --- Artifact names ----------------------------------------------------------

GREPTIMEDB_CHART_NAME = "greptimedb"
GREPTIMEDB_OPERATOR_CHART_NAME = "greptimedb-operator"
ETCD_CHART_NAME = "etcd"

GREPTIME_BINARY_NAME = "greptime"
ETCD_BINARY_NAME = "etcd"

# Regional pointer files are published under the repository name rather than
# the executable name.
REGIONAL_BINARY_ALIASES = {GREPTIME_BINARY_NAME: "greptimedb"}

# --- Versions ------------------------------------------------------------------

LATEST_VERSION_TAG = "latest"
DEFAULT_ETCD_CHART_VERSION = "9.2.0"
DEFAULT_ETCD_BINARY_VERSION = "v3.5.7"

# Releases at or after this version ship ``greptime-<os>-<arch>-<version>.tar.gz``.
GREPTIME_BREAKING_CHANGE_VERSION = "v0.4.0-nightly-20230802"

# --- Upstream locations --------------------------------------------------------

CHART_INDEX_URL = "https://raw.githubusercontent.com/GreptimeTeam/helm-charts/gh-pages/index.yaml"
CHART_RELEASE_DOWNLOAD_URL = "https://github.com/GreptimeTeam/helm-charts/releases/download"

REGIONAL_RELEASE_BUCKET = "https://downloads.greptime.cn/releases"
REGIONAL_CHARTS_URL = f"{REGIONAL_RELEASE_BUCKET}/charts"
REGIONAL_GREPTIMEDB_URL = f"{REGIONAL_RELEASE_BUCKET}/greptimedb"
REGIONAL_ETCD_URL = f"{REGIONAL_RELEASE_BUCKET}/etcd"

LATEST_VERSION_POINTER = "latest-version.txt"
LATEST_NIGHTLY_VERSION_POINTER = "latest-nightly-version.txt"

GITHUB_API_URL = "https://api.github.com"
GITHUB_DOWNLOAD_URL = "https://github.com"
GREPTIMEDB_GITHUB_OWNER = "GreptimeTeam"
GREPTIMEDB_GITHUB_REPO = "greptimedb"
ETCD_GITHUB_OWNER = "etcd-io"
ETCD_GITHUB_REPO = "etcd"

ETCD_OCI_REGISTRY = "oci://registry-1.docker.io/bitnamicharts/etcd"
HELM_CHART_LAYER_MEDIA_TYPE = "application/vnd.cncf.helm.chart.content.v1.tar+gzip"

# --- Local layout --------------------------------------------------------------

BASE_DIR_NAME = ".gtctl"
ARTIFACTS_DIR_NAME = "artifacts"
CHARTS_DIR_NAME = "charts"
BINARIES_DIR_NAME = "binaries"
PACKAGE_DIR_NAME = "pkg"
INSTALL_DIR_NAME = "bin"
