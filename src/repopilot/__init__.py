"""RepoPilot: AI-assisted maintenance for GitHub repositories.

This package provides:
- A GitHub REST client for repository context and Git Data operations
- An AI proposal engine producing structured analyses and Fix Proposals
- Publication of Fix Proposals as branches, commits and pull requests
- Issue analysis, PR review, CI failure and documentation pipelines
- Issue triage and a weekly follow-up scan
"""
