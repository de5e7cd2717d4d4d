from django.core.management.base import BaseCommand

from dx_core.report_templates.services import TemplateStore


class Command(BaseCommand):
    help = "Seed the embedded system report templates (idempotent)."

    def handle(self, *args, **options):
        result = TemplateStore.seed_system_templates()
        self.stdout.write(
            self.style.SUCCESS(f"System templates: {result.created} created, {result.existing} already present.")
        )
