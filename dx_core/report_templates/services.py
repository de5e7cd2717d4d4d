# dx_core/report_templates/services.py
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from django.db import IntegrityError, transaction
from rest_framework.exceptions import ValidationError

from dx_core.audit.services import AuditService
from dx_core.common.api.exceptions import ConflictError, ForbiddenError, NotFoundError
from dx_core.common.api.lookups import uuid_or_not_found
from dx_core.hospitals.models import Hospital
from dx_core.report_templates import defaults
from dx_core.report_templates.models import ReportTemplate, TemplateType
from dx_core.report_templates.schema import TEMPLATE_CODE_RE, validate_fields, validate_sections, validate_structure
from dx_core.report_templates.selectors import (
    defaults_for_category,
    find_category_default,
    find_test_template,
    get_template_by_id,
    latest_in_category,
    system_template_by_code,
    templates_in_category,
)

logger = logging.getLogger(__name__)

STRUCTURE_FIELDS = (
    "fields",
    "calculated_fields",
    "reference_ranges",
    "critical_value_rules",
    "sections",
    "header_config",
    "footer_config",
    "styling",
    "print_config",
    "specimen_config",
)

# copied by clone / new version
CONTENT_FIELDS = (
    "template_name",
    "short_name",
    "description",
    "category",
    "sub_category",
    "test_code",
    "template_type",
) + STRUCTURE_FIELDS

# writable through update_template (code, category and default flag have their own paths)
EDITABLE_FIELDS = tuple(f for f in CONTENT_FIELDS if f != "category")


@dataclass(frozen=True)
class SeedResult:
    created: int
    existing: int


def template_snapshot(template: ReportTemplate) -> dict[str, Any]:
    """Deep, JSON-safe copy of a template, frozen into each report."""
    snap: dict[str, Any] = {
        "id": str(template.id),
        "template_code": template.template_code,
        "version": template.version,
        "hospital_id": str(template.hospital_id) if template.hospital_id else None,
        "is_system_template": template.is_system_template,
    }
    for name in CONTENT_FIELDS:
        snap[name] = copy.deepcopy(getattr(template, name))
    return snap


def _normalise_category(category: str | None) -> str:
    return (category or "").strip().upper()


class TemplateStore:
    """
    Write model for report templates.

    - system templates (hospital_id NULL) are seeded, never edited
    - hospital templates are created or cloned, then edited in place
    - versions are new rows; the previous one is deactivated, not mutated
    """

    # ----------------------------
    # internals
    # ----------------------------
    @staticmethod
    def _get_owned_for_write(*, template_id: UUID, hospital_id: UUID) -> ReportTemplate:
        template = ReportTemplate.objects.select_for_update().filter(id=uuid_or_not_found(template_id, "Template")).first()
        if template is None:
            raise NotFoundError("Template")
        if template.is_system_template:
            raise ForbiddenError("Cannot edit system templates. Clone it first to customize.")
        if template.hospital_id != hospital_id:
            raise ForbiddenError("Access denied to this template.")
        return template

    @staticmethod
    def _lock_hospital(*, hospital_id: UUID | None) -> None:
        """
        Serialise template writes that depend on what else exists in the
        hospital (code uniqueness, the single default per category). The row
        exists even when the category is still empty. Taken before any
        template row lock.
        """
        if hospital_id is not None:
            Hospital.objects.select_for_update().filter(id=hospital_id).first()

    @staticmethod
    def _clear_defaults(*, category: str, hospital_id: UUID | None, exclude_id: UUID | None = None) -> int:
        """Caller holds the hospital lock. Every row of the pair is locked before clearing."""
        list(templates_in_category(category=category, hospital_id=hospital_id).select_for_update().values_list("id", flat=True))
        rows = defaults_for_category(category=category, hospital_id=hospital_id)
        if exclude_id is not None:
            rows = rows.exclude(id=exclude_id)
        return rows.update(is_default=False)

    @staticmethod
    def _audit(*, template: ReportTemplate, event_code: str, hospital_id: UUID, actor_user_id: int | None, **metadata) -> None:
        AuditService.log(
            event_code=event_code,
            entity_type="ReportTemplate",
            entity_id=template.id,
            hospital_id=hospital_id,
            actor_user_id=actor_user_id,
            metadata={"template_code": template.template_code, "version": template.version, **metadata},
        )

    @staticmethod
    def _materialise_system_default(data: dict) -> ReportTemplate:
        existing = system_template_by_code(template_code=data["template_code"])
        if existing is not None:
            return existing

        payload = {k: v for k, v in data.items() if k not in ("template_code", "is_default")}
        template, created = ReportTemplate.objects.get_or_create(
            hospital_id=None,
            template_code=data["template_code"],
            version=1,
            defaults={
                **payload,
                "is_system_template": True,
                "is_default": bool(data.get("is_default")),
                "is_active": True,
            },
        )
        if created:
            logger.info("Seeded system template %s (%s)", template.template_code, template.category)
        return template

    # ----------------------------
    # resolution
    # ----------------------------
    @staticmethod
    @transaction.atomic
    def resolve_template_for_test(*, test_code: str | None, category: str, hospital_id: UUID) -> ReportTemplate:
        """
        test-specific (hospital) -> test-specific (system)
        -> category default (hospital) -> category default (system)
        -> embedded default, seeded on demand.
        """
        category = _normalise_category(category)
        test_code = (test_code or "").strip()

        if test_code:
            template = find_test_template(test_code=test_code, hospital_id=hospital_id)
            if template is not None:
                return template
            template = find_test_template(test_code=test_code, hospital_id=None)
            if template is not None:
                return template

        template = find_category_default(category=category, hospital_id=hospital_id)
        if template is not None:
            return template
        template = find_category_default(category=category, hospital_id=None)
        if template is not None:
            return template

        embedded = defaults.get_default_template_for_category(category)
        if embedded is not None:
            return TemplateStore._materialise_system_default(embedded)

        # no default at all, but the category is in use
        template = latest_in_category(category=category, hospital_id=hospital_id)
        if template is not None:
            return template

        raise NotFoundError(detail=f"Unknown report category '{category}'.")

    @staticmethod
    def get_template(*, template_id: UUID, hospital_id: UUID) -> ReportTemplate:
        template = get_template_by_id(template_id=uuid_or_not_found(template_id, "Template"))
        if template is None:
            raise NotFoundError("Template")
        if template.hospital_id is not None and template.hospital_id != hospital_id:
            raise ForbiddenError("Access denied to this template.")
        return template

    # ----------------------------
    # create / clone
    # ----------------------------
    @staticmethod
    def _validate_new(data: dict) -> None:
        errors: dict[str, list[str]] = {}

        code = (data.get("template_code") or "").strip()
        if not code:
            errors["template_code"] = ["Template code is required."]
        elif not TEMPLATE_CODE_RE.match(code):
            errors["template_code"] = ["Template code must be uppercase alphanumeric with underscores."]

        if not (data.get("template_name") or "").strip():
            errors["template_name"] = ["Template name is required."]
        if not _normalise_category(data.get("category")):
            errors["category"] = ["Category is required."]

        ttype = data.get("template_type") or TemplateType.TABULAR
        if ttype not in TemplateType.values:
            errors["template_type"] = [f"Invalid template type. Must be one of: {', '.join(TemplateType.values)}."]

        if errors:
            raise ValidationError(errors)

        validate_structure(data)

    @staticmethod
    @transaction.atomic
    def create_template(*, hospital_id: UUID, data: dict, actor_user_id: int | None) -> ReportTemplate:
        TemplateStore._validate_new(data)

        code = data["template_code"].strip()
        TemplateStore._lock_hospital(hospital_id=hospital_id)
        if ReportTemplate.objects.filter(hospital_id=hospital_id, template_code=code).exists():
            raise ConflictError(f"Template code '{code}' already exists for this hospital.")

        category = _normalise_category(data["category"])
        payload = {k: copy.deepcopy(data[k]) for k in EDITABLE_FIELDS if k in data and data[k] is not None}

        make_default = bool(data.get("is_default"))
        if make_default:
            TemplateStore._clear_defaults(category=category, hospital_id=hospital_id)

        try:
            with transaction.atomic():
                template = ReportTemplate.objects.create(
                    **payload,
                    hospital_id=hospital_id,
                    template_code=code,
                    category=category,
                    version=1,
                    is_system_template=False,
                    is_default=make_default,
                    is_active=True,
                    created_by_user_id=actor_user_id,
                    updated_by_user_id=actor_user_id,
                )
        except IntegrityError:
            # a concurrent create won the unique (hospital, code, version) slot
            raise ConflictError(f"Template code '{code}' already exists for this hospital.")

        TemplateStore._audit(template=template, event_code="template.created", hospital_id=hospital_id, actor_user_id=actor_user_id)
        return template

    @staticmethod
    def _clone_into(*, source: ReportTemplate, hospital_id: UUID, actor_user_id: int | None) -> tuple[ReportTemplate, bool]:
        existing = (
            ReportTemplate.objects.filter(hospital_id=hospital_id, template_code=source.template_code)
            .order_by("-version")
            .first()
        )
        if existing is not None:
            return existing, False

        clone = ReportTemplate.objects.create(
            **{name: copy.deepcopy(getattr(source, name)) for name in CONTENT_FIELDS},
            hospital_id=hospital_id,
            template_code=source.template_code,
            version=1,
            is_system_template=False,
            is_default=False,
            is_active=True,
            created_by_user_id=actor_user_id,
            updated_by_user_id=actor_user_id,
        )
        return clone, True

    @staticmethod
    @transaction.atomic
    def clone_template(*, template_id: UUID, hospital_id: UUID, actor_user_id: int | None) -> ReportTemplate:
        source = get_template_by_id(template_id=template_id)
        if source is None:
            raise NotFoundError("Source template")
        if not source.is_system_template:
            raise ValidationError({"template_id": ["Only system templates can be cloned."]})

        clone, created = TemplateStore._clone_into(source=source, hospital_id=hospital_id, actor_user_id=actor_user_id)
        if created:
            TemplateStore._audit(
                template=clone,
                event_code="template.cloned",
                hospital_id=hospital_id,
                actor_user_id=actor_user_id,
                source_template_id=str(source.id),
            )
        return clone

    # ----------------------------
    # updates (hospital-owned only)
    # ----------------------------
    @staticmethod
    def _apply(
        *,
        template: ReportTemplate,
        changes: dict,
        hospital_id: UUID,
        actor_user_id: int | None,
        event_code: str,
    ) -> ReportTemplate:
        for name, value in changes.items():
            setattr(template, name, copy.deepcopy(value))
        template.updated_by_user_id = actor_user_id
        template.save(update_fields=[*changes.keys(), "updated_by_user_id", "updated_at"])

        TemplateStore._audit(
            template=template,
            event_code=event_code,
            hospital_id=hospital_id,
            actor_user_id=actor_user_id,
            changed=sorted(changes.keys()),
        )
        return template

    @staticmethod
    @transaction.atomic
    def update_template(*, template_id: UUID, hospital_id: UUID, data: dict, actor_user_id: int | None) -> ReportTemplate:
        template = TemplateStore._get_owned_for_write(template_id=template_id, hospital_id=hospital_id)

        changes = {k: data[k] for k in EDITABLE_FIELDS if k in data}
        if "template_type" in changes and changes["template_type"] not in TemplateType.values:
            raise ValidationError({"template_type": ["Invalid template type."]})

        merged = {name: getattr(template, name) for name in STRUCTURE_FIELDS}
        merged.update({k: v for k, v in changes.items() if k in STRUCTURE_FIELDS})
        validate_structure(merged)

        if not changes:
            return template
        return TemplateStore._apply(
            template=template,
            changes=changes,
            hospital_id=hospital_id,
            actor_user_id=actor_user_id,
            event_code="template.updated",
        )

    @staticmethod
    @transaction.atomic
    def update_sections(*, template_id: UUID, hospital_id: UUID, sections: list, actor_user_id: int | None) -> ReportTemplate:
        template = TemplateStore._get_owned_for_write(template_id=template_id, hospital_id=hospital_id)
        validate_sections(sections)
        return TemplateStore._apply(
            template=template,
            changes={"sections": sections},
            hospital_id=hospital_id,
            actor_user_id=actor_user_id,
            event_code="template.sections_updated",
        )

    @staticmethod
    @transaction.atomic
    def update_entry_fields(*, template_id: UUID, hospital_id: UUID, fields: list, actor_user_id: int | None) -> ReportTemplate:
        template = TemplateStore._get_owned_for_write(template_id=template_id, hospital_id=hospital_id)
        validate_fields(fields)
        validate_structure({"fields": fields, "calculated_fields": template.calculated_fields})
        return TemplateStore._apply(
            template=template,
            changes={"fields": fields},
            hospital_id=hospital_id,
            actor_user_id=actor_user_id,
            event_code="template.fields_updated",
        )

    @staticmethod
    @transaction.atomic
    def update_styling(*, template_id: UUID, hospital_id: UUID, styling: dict, actor_user_id: int | None) -> ReportTemplate:
        template = TemplateStore._get_owned_for_write(template_id=template_id, hospital_id=hospital_id)
        if not isinstance(styling, dict):
            raise ValidationError({"styling": ["Styling must be an object."]})
        return TemplateStore._apply(
            template=template,
            changes={"styling": styling},
            hospital_id=hospital_id,
            actor_user_id=actor_user_id,
            event_code="template.styling_updated",
        )

    @staticmethod
    @transaction.atomic
    def set_as_default(*, template_id: UUID, hospital_id: UUID, actor_user_id: int | None = None) -> ReportTemplate:
        """Clear-then-set under the hospital lock, so at most one default survives concurrent calls."""
        TemplateStore._lock_hospital(hospital_id=hospital_id)
        template = TemplateStore._get_owned_for_write(template_id=template_id, hospital_id=hospital_id)
        if not template.is_active:
            raise ConflictError("Inactive templates cannot be made default.")

        TemplateStore._clear_defaults(category=template.category, hospital_id=hospital_id, exclude_id=template.id)
        if not template.is_default:
            template.is_default = True
            template.updated_by_user_id = actor_user_id
            template.save(update_fields=["is_default", "updated_by_user_id", "updated_at"])

        TemplateStore._audit(
            template=template,
            event_code="template.default_set",
            hospital_id=hospital_id,
            actor_user_id=actor_user_id,
            category=template.category,
        )
        return template

    @staticmethod
    @transaction.atomic
    def create_new_version(*, template_id: UUID, hospital_id: UUID, data: dict, actor_user_id: int | None) -> ReportTemplate:
        TemplateStore._lock_hospital(hospital_id=hospital_id)
        current = TemplateStore._get_owned_for_write(template_id=template_id, hospital_id=hospital_id)

        latest = (
            ReportTemplate.objects.filter(hospital_id=hospital_id, template_code=current.template_code)
            .order_by("-version")
            .first()
        )
        if latest is not None and latest.id != current.id:
            raise ConflictError(f"Only the latest version (v{latest.version}) can be versioned.")

        content = {name: copy.deepcopy(getattr(current, name)) for name in CONTENT_FIELDS}
        content.update({k: copy.deepcopy(data[k]) for k in EDITABLE_FIELDS if k in data and data[k] is not None})
        if content["template_type"] not in TemplateType.values:
            raise ValidationError({"template_type": ["Invalid template type."]})
        validate_structure(content)

        was_default = current.is_default
        current.is_active = False
        current.is_default = False
        current.updated_by_user_id = actor_user_id
        current.save(update_fields=["is_active", "is_default", "updated_by_user_id", "updated_at"])

        new = ReportTemplate.objects.create(
            **content,
            hospital_id=hospital_id,
            template_code=current.template_code,
            version=current.version + 1,
            previous_version=current,
            is_system_template=False,
            is_default=was_default,
            is_active=True,
            created_by_user_id=actor_user_id,
            updated_by_user_id=actor_user_id,
        )

        TemplateStore._audit(
            template=new,
            event_code="template.version_created",
            hospital_id=hospital_id,
            actor_user_id=actor_user_id,
            previous_version_id=str(current.id),
        )
        return new

    # ----------------------------
    # deactivate / delete
    # ----------------------------
    @staticmethod
    @transaction.atomic
    def deactivate_template(*, template_id: UUID, hospital_id: UUID, actor_user_id: int | None) -> ReportTemplate:
        template = TemplateStore._get_owned_for_write(template_id=template_id, hospital_id=hospital_id)
        if template.is_active or template.is_default:
            template.is_active = False
            template.is_default = False
            template.updated_by_user_id = actor_user_id
            template.save(update_fields=["is_active", "is_default", "updated_by_user_id", "updated_at"])
            TemplateStore._audit(
                template=template,
                event_code="template.deactivated",
                hospital_id=hospital_id,
                actor_user_id=actor_user_id,
            )
        return template

    @staticmethod
    @transaction.atomic
    def delete_template(*, template_id: UUID, hospital_id: UUID, actor_user_id: int | None) -> None:
        template = TemplateStore._get_owned_for_write(template_id=template_id, hospital_id=hospital_id)
        if template.reports.exists():
            raise ConflictError("Template is referenced by reports; deactivate it instead.")

        TemplateStore._audit(
            template=template,
            event_code="template.deleted",
            hospital_id=hospital_id,
            actor_user_id=actor_user_id,
        )
        template.delete()

    # ----------------------------
    # seeding / hospital onboarding
    # ----------------------------
    @staticmethod
    @transaction.atomic
    def seed_system_templates() -> SeedResult:
        created = 0
        existing = 0
        for data in defaults.DEFAULT_TEMPLATES:
            if system_template_by_code(template_code=data["template_code"]) is not None:
                existing += 1
                continue
            TemplateStore._materialise_system_default(copy.deepcopy(data))
            created += 1

        logger.info("System templates seeded: %d created, %d already present", created, existing)
        return SeedResult(created=created, existing=existing)

    @staticmethod
    def initialize_hospital_templates(*, hospital_id: UUID, actor_user_id: int | None) -> dict[str, int]:
        """
        Clone every active system template into the hospital.
        One failing template is logged and skipped; the rest still go through.
        """
        system_templates = list(
            ReportTemplate.objects.filter(hospital_id__isnull=True, is_system_template=True, is_active=True)
            .order_by("category", "template_code")
        )

        cloned = 0
        skipped = 0
        failed = 0
        for source in system_templates:
            try:
                with transaction.atomic():
                    _, created = TemplateStore._clone_into(source=source, hospital_id=hospital_id, actor_user_id=actor_user_id)
            except Exception:
                failed += 1
                logger.exception("Failed to clone template %s for hospital %s", source.template_code, hospital_id)
                continue
            if created:
                cloned += 1
            else:
                skipped += 1

        logger.info(
            "Initialised templates for hospital %s: %d cloned, %d already present, %d failed",
            hospital_id, cloned, skipped, failed,
        )
        return {"total_system_templates": len(system_templates), "cloned": cloned, "skipped": skipped, "failed": failed}

    # ----------------------------
    # projections of the resolved template
    # ----------------------------
    @staticmethod
    def entry_form_config(*, test_code: str | None, category: str, hospital_id: UUID) -> dict[str, Any]:
        t = TemplateStore.resolve_template_for_test(test_code=test_code, category=category, hospital_id=hospital_id)
        return {
            "template_id": str(t.id),
            "template_code": t.template_code,
            "template_name": t.template_name,
            "template_type": t.template_type,
            "version": t.version,
            "fields": t.fields,
            "calculated_fields": t.calculated_fields,
            "sections": t.sections,
            "reference_ranges": t.reference_ranges,
            "specimen_config": t.specimen_config,
        }

    @staticmethod
    def print_config(*, test_code: str | None, category: str, hospital_id: UUID) -> dict[str, Any]:
        t = TemplateStore.resolve_template_for_test(test_code=test_code, category=category, hospital_id=hospital_id)
        return {
            "template_id": str(t.id),
            "header_config": t.header_config,
            "sections": t.sections,
            "footer_config": t.footer_config,
            "styling": t.styling,
            "print_config": t.print_config,
        }
