"""GitLab organisation ingestion.

Reads the group hierarchy and user membership of a GitLab instance (or a
subtree of it) over the REST API, rebuilds the group graph and publishes
User and Group entities to the catalog as one full replacement per pass.
"""
