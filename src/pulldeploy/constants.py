"""Centralized constants for pulldeploy."""

# Commit watcher
POLL_INTERVAL_SECONDS = 60
HTTP_TIMEOUT_SECONDS = 30
USER_AGENT = "pulldeploy"

# Workspace naming: day_month_year_hourminute, e.g. 01_Sep_2024_1308
WORKSPACE_TIME_FORMAT = "%d_%b_%Y_%H%M"
WORKSPACE_NAME_SEGMENTS = 4
MAX_DESTINATION_ATTEMPTS = 99

# Clone credentials
GIT_TOKEN_USERNAME = "x-access-token"

# Key files (build manifests)
CARGO_MANIFEST = "Cargo.toml"
GO_MANIFEST = "go.mod"
GLEAM_MANIFEST = "gleam.toml"
NODEJS_MANIFEST = "package.json"

# Build output locations, relative to the manifest directory
RUST_RELEASE_DIR = "target/release"
GLEAM_SHIPMENT_DIR = "build/erlang-shipment"

# Defaults for the deployment config file
DEFAULT_CONFIG_PATH = "/etc/pulldeploy/config.json"
DEFAULT_PULL_DIR = "/var/www"
DEFAULT_UNIT_DIR = "/lib/systemd/system"
