import os

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from comparison.client import NdaCheckerClient
from comparison.orchestrator import (
    CUSTOMER_NDA,
    REFERENCE_NDA,
    AnalysisState,
    ComparisonSession,
    SlotState,
)
from comparison.render import render_analysis


class Command(BaseCommand):
    help = "Upload a reference NDA and a customer NDA to a running NDA Checker and print the comparison"

    def add_arguments(self, parser):
        parser.add_argument('reference', help="Path to the reference NDA (PDF, DOC or DOCX)")
        parser.add_argument('customer', help="Path to the customer NDA (PDF, DOC or DOCX)")
        parser.add_argument(
            '--base-url',
            default=settings.NDA_CHECKER_BASE_URL,
            help="Base URL of the NDA Checker service",
        )
        parser.add_argument('--report', help="Also store the comparison and save the PDF report to this path")

    def handle(self, *args, **options):
        for path in (options['reference'], options['customer']):
            if not os.path.isfile(path):
                raise CommandError(f"File not found: {path}")

        client = NdaCheckerClient(options['base_url'])
        session = ComparisonSession(client, on_progress=lambda step: self.stdout.write(step))
        try:
            self._upload_both(session, options['reference'], options['customer'])

            result = session.compare()
            if session.analysis_state == AnalysisState.ERROR:
                raise CommandError(f"Analysis failed: {session.analysis_error}")

            self._print_result(session, result)

            if options['report']:
                client.store_comparison(session.to_storage())
                with open(options['report'], 'wb') as report_file:
                    report_file.write(client.download_report())
                self.stdout.write(self.style.SUCCESS(f"Report saved to {options['report']}"))
        finally:
            session.close()

    def _upload_both(self, session, reference_path, customer_path):
        handles = []
        try:
            futures = []
            for document_type, path in ((REFERENCE_NDA, reference_path), (CUSTOMER_NDA, customer_path)):
                handle = open(path, 'rb')
                handles.append(handle)
                futures.append(session.upload_async(
                    document_type, os.path.basename(path), handle, os.path.getsize(path)
                ))
            for future in futures:
                future.result()
        finally:
            for handle in handles:
                handle.close()

        for slot in (session.reference, session.customer):
            if slot.state != SlotState.SUCCESS:
                result = slot.result or {}
                details = result.get('details')
                message = result.get('error') or 'Upload failed'
                raise CommandError(f"{slot.file_name}: {message}" + (f" ({details})" if details else ""))
            self.stdout.write(f"{slot.file_name}: parsed {slot.document.parsed_content.pages} page(s)")

    def _print_result(self, session, result):
        tabs = render_analysis(result, session.reference.document.to_dict(), session.customer.document.to_dict())
        if tabs['error']:
            self.stdout.write(self.style.WARNING(tabs['error']))

        summary = tabs['summary']
        self.stdout.write(self.style.MIGRATE_HEADING(f"Overall risk: {summary['overallRisk']}"))
        self.stdout.write(summary['recommendation'])

        self.stdout.write(self.style.MIGRATE_HEADING("Sections"))
        for section in tabs['comparison']['sections']:
            self.stdout.write(f"  {section['match']:>3}%  {section['title']}: {section['differences']}")

        counts = tabs['risks']['counts']
        self.stdout.write(self.style.MIGRATE_HEADING(
            f"Risks ({counts['high']} high, {counts['medium']} medium, {counts['low']} low)"
        ))
        for risk in tabs['risks']['risks']:
            self.stdout.write(f"  [{risk['severity']}] {risk['title']}: {risk['recommendation']}")
