"""
Provisioning engine.

Runs every input record through normalization, OU resolution, credential
classification and account reconciliation, one record at a time and in input
order. A failure is contained to the record it happened in.
"""

import logging
from dataclasses import replace
from typing import Iterable, Optional, Sequence

from ad_provision.credentials import classify_credential_tier
from ad_provision.directory.base import DirectoryBackend
from ad_provision.models import Reason, RecordOutcome
from ad_provision.normalizer import RecordRejected, normalize_record, sanitize_account_name
from ad_provision.ou_resolver import OUResolutionError, OUResolver
from ad_provision.reconciler import AccountReconciler
from ad_provision.summary import RunAggregator, RunSummary, log_summary

logger = logging.getLogger(__name__)


class ProvisioningEngine:
    """
    Sequential reconciliation of a batch of user records.

    The OU memo inside the resolver is the only state shared between records.
    """

    def __init__(self, backend: DirectoryBackend, settings):
        """
        Args:
            backend: Directory backend the operations are issued against
            settings: Immutable ProvisioningSettings for this run
        """
        self.backend = backend
        self.settings = settings
        self.ou_resolver = OUResolver(backend, settings.base_ou)
        self.reconciler = AccountReconciler(backend, settings)
        self.aggregator = RunAggregator()

    def run(self, records: Iterable[Sequence[Optional[str]]]) -> RunSummary:
        """
        Process every record and return the run summary.

        Args:
            records: Positional records, header row already removed
        """
        logger.info(f"Starting provisioning run (base OU {self.settings.base_ou}, "
                    f"delete_existing={self.settings.delete_existing})")

        for line_number, fields in enumerate(records, start=1):
            outcome = self.process_record(fields, line_number)
            self.aggregator.record(outcome)

        summary = self.aggregator.summary()
        log_summary(summary)
        return summary

    def process_record(self, fields: Sequence[Optional[str]], line_number: int = 0) -> RecordOutcome:
        """Run one record through the pipeline and classify the result."""
        label = sanitize_account_name(fields[0] if fields else '') or f'record {line_number}'
        try:
            return self._process(fields)
        except Exception as e:
            logger.error(f"Unexpected error processing {label}: {e}", exc_info=True)
            return RecordOutcome.error(label, Reason.UNEXPECTED_ERROR, str(e))

    def _process(self, fields: Sequence[Optional[str]]) -> RecordOutcome:
        try:
            directive = normalize_record(fields, self.settings.default_mail)
        except RecordRejected as e:
            account = sanitize_account_name(fields[0] if fields else '')
            logger.warning(f"Skipping record {account or '<unnamed>'}: {e}")
            return RecordOutcome.skipped(account, e.reason, str(e))

        account = directive.sam_account_name
        logger.info(f"Processing {account} (OU {directive.ou_component})")

        try:
            ou_dn = self.ou_resolver.ensure(directive.ou_component)
        except OUResolutionError as e:
            logger.error(f"Skipping {account}: OU setup failed ({e.reason})")
            return RecordOutcome.skipped(account, Reason.OU_SETUP_FAILED, e.reason)

        tier = classify_credential_tier(directive.member_of, self.settings.elevated_groups)
        directive = replace(directive, credential_tier=tier)

        outcome = self.reconciler.reconcile(directive, ou_dn)
        logger.info(f"{account}: {outcome.classification.value}"
                    + (f" ({outcome.reason.code})" if outcome.reason else ""))
        return outcome
