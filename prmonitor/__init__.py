"""
PRMonitor - Keep tracked GitHub pull requests up to date with their base branch.

A background monitor that:
1. Tracks a user-curated list of pull requests
2. Periodically checks each open PR's mergeability on GitHub
3. Updates branches that fell behind their base
4. Marks merged PRs as closed and alerts on conflicts or blocked PRs

Usage:
    prmonitor init          # Create the data directory and sample config
    prmonitor token set     # Store the GitHub API token
    prmonitor add URL       # Track a pull request
    prmonitor list          # Show tracked pull requests
    prmonitor run           # Run the monitor loop in the foreground
    prmonitor serve         # Serve the HTTP API for desktop shells
"""

__version__ = "0.1.0"
__author__ = "PRMonitor"
