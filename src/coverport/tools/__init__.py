"""Wrappers around the external CLIs coverport shells out to."""

from coverport.tools.codecov import CodecovUploader, UploadRequest, git_service, repo_slug
from coverport.tools.cosign import AttestationReader, GitMetadata, parse_attestation
from coverport.tools.git import RepositoryCloner
from coverport.tools.oras import OrasClient, artifact_ref, default_tag, write_ref_file
from coverport.tools.runner import require_tool, run_tool

__all__ = [
    "AttestationReader",
    "CodecovUploader",
    "GitMetadata",
    "OrasClient",
    "RepositoryCloner",
    "UploadRequest",
    "artifact_ref",
    "default_tag",
    "git_service",
    "parse_attestation",
    "repo_slug",
    "require_tool",
    "run_tool",
    "write_ref_file",
]
