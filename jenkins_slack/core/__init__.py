"""Core logic: job-reference parsing and the credential vault.

WHY: The parts of the bot that carry real rules (the quoting grammar for
job names and the encrypted credential lifecycle) live here, free of any
Slack or Jenkins I/O, so they can be tested directly.

RULES:
- No network calls in this package
- Storage access only through the KVStore interface
"""

from jenkins_slack.core.models import ParsedJobReference, UserCredential
from jenkins_slack.core.parser import parse_build_parameters, parse_job_reference
from jenkins_slack.core.storage import JsonFileKVStore, KVStore, MemoryKVStore
from jenkins_slack.core.vault import CredentialVault

__all__ = [
    "CredentialVault",
    "JsonFileKVStore",
    "KVStore",
    "MemoryKVStore",
    "ParsedJobReference",
    "UserCredential",
    "parse_build_parameters",
    "parse_job_reference",
]
