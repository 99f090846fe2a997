"""pulldeploy: self-hosted continuous deployment daemon.

Watches a GitHub repository for new commits, clones each new commit into a
fresh workspace, builds the configured services, moves the build output into
per-service deployment directories and starts or restarts the matching
systemd units.
"""

__version__ = "0.1.0"
