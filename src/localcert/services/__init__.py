"""
Services - certificate lifecycle logic.

Contains the validator, generator, key store gateway, lifecycle manager,
task runner and the caller-facing LocalCertService.
"""
