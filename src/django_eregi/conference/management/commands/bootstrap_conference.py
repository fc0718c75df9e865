"""Management command to bootstrap a conference from a TOML configuration file."""

import datetime
from typing import Any
from zoneinfo import ZoneInfo

from django.core.management.base import BaseCommand, CommandError, CommandParser
from django.db import transaction

from django_eregi.conference.models import Conference, GradeLabel, RegistrationPeriod, Society
from django_eregi.config_loader import load_conference_config
from django_eregi.members.models import SocietyMember
from django_eregi.registration.pricing import normalize_grade_key

# Mapping from TOML short field names to Django model field names.
_SOCIETY_FIELD_MAP: dict[str, str] = {
    "name": "name",
    "name_en": "name_en",
}

_CONFERENCE_FIELD_MAP: dict[str, str] = {
    "name": "name",
    "start": "start_date",
    "end": "end_date",
    "timezone": "timezone",
    "venue": "venue",
    "payment_provider": "payment_provider",
    "payment_client_key": "payment_client_key",
    "nice_merchant_id": "nice_merchant_id",
    "test_mode": "payment_test_mode",
    "order_prefix": "order_prefix",
}

_PERIOD_FIELD_MAP: dict[str, str] = {
    "name_en": "name_en",
    "type": "period_type",
}

_GRADE_FIELD_MAP: dict[str, str] = {
    "name_ko": "name_ko",
    "name_en": "name_en",
}

_MEMBER_FIELD_MAP: dict[str, str] = {
    "name": "name",
    "license_number": "license_number",
    "code": "code",
    "grade": "grade",
    "expiry": "expiry_date",
}


def _map_fields(data: dict[str, Any], field_map: dict[str, str]) -> dict[str, Any]:
    """Map TOML config keys to Django model field names.

    Args:
        data: Raw config data with short field names.
        field_map: Mapping of config key -> model field name.

    Returns:
        Dict with model field names as keys.
    """
    result: dict[str, Any] = {}
    for config_key, model_field in field_map.items():
        if config_key in data:
            result[model_field] = data[config_key]
    return result


def _aware(value: datetime.date, tz_name: str, *, end_of_day: bool) -> datetime.datetime:
    """Turn a TOML date or local datetime into an aware datetime in *tz_name*.

    Bare dates become the start of the day, or its last second when
    *end_of_day* is set.
    """
    tz = ZoneInfo(tz_name)
    if isinstance(value, datetime.datetime):
        return value if value.tzinfo else value.replace(tzinfo=tz)
    moment = datetime.time(23, 59, 59) if end_of_day else datetime.time.min
    return datetime.datetime.combine(value, moment, tzinfo=tz)


def normalize_prices(prices: dict[str, Any], label: str) -> dict[str, int]:
    """Return *prices* with keys normalized by :func:`normalize_grade_key`.

    Raises:
        CommandError: If two keys normalize to the same grade key.
    """
    result: dict[str, int] = {}
    for raw_key, amount in prices.items():
        key = normalize_grade_key(raw_key)
        if key in result:
            msg = f"{label}: price keys collide after normalization on '{key}'"
            raise CommandError(msg)
        result[key] = int(amount)
    return result


class Command(BaseCommand):
    """Bootstrap a society and conference from a TOML configuration file.

    Parses the given TOML file, validates its structure, and creates (or
    updates) the corresponding ``Society``, ``Conference``,
    ``RegistrationPeriod``, ``GradeLabel`` and ``SocietyMember`` records.
    Price keys are stored normalized so that lookups at registration time hit
    the exact key.

    Usage::

        manage.py bootstrap_conference --config conference.toml
        manage.py bootstrap_conference --config conference.toml --update
        manage.py bootstrap_conference --config conference.toml --dry-run
    """

    help = "Create or update a society, conference, periods, grades and members from a TOML config file."

    def add_arguments(self, parser: CommandParser) -> None:
        """Define the command-line arguments accepted by this command.

        Args:
            parser: The argument parser to configure.
        """
        parser.add_argument(
            "--config",
            required=True,
            help="Path to the conference TOML configuration file.",
        )
        parser.add_argument(
            "--update",
            action="store_true",
            default=False,
            help="Update an existing conference instead of failing on duplicate slug.",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            default=False,
            help="Validate the config and print what would be created without saving.",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the bootstrap command.

        Args:
            *args: Positional arguments (unused).
            **options: Parsed command-line options.
        """
        config_path: str = options["config"]
        update: bool = options["update"]
        dry_run: bool = options["dry_run"]
        verbosity: int = options["verbosity"]

        try:
            config = load_conference_config(config_path)
        except (FileNotFoundError, TypeError, ValueError) as exc:
            raise CommandError(str(exc)) from exc

        society_data: dict[str, Any] = config["society"]
        conf: dict[str, Any] = config["conference"]
        periods_data: list[dict[str, Any]] = conf["periods"]
        for idx, period in enumerate(periods_data):
            period["prices"] = normalize_prices(period["prices"], f"conference.periods[{idx}]")

        if dry_run:
            self._print_dry_run(society_data, conf, periods_data)
            return

        with transaction.atomic():
            society = self._bootstrap_society(society_data)
            conference = self._bootstrap_conference(society, conf, update=update)
            created_periods, updated_periods = self._bootstrap_periods(conference, periods_data)
            created_grades, updated_grades = self._bootstrap_grades(society, society_data["grades"])
            created_members, updated_members = self._bootstrap_members(society, society_data["members"])

        results = {
            "periods": (created_periods, updated_periods),
            "grades": (created_grades, updated_grades),
            "members": (created_members, updated_members),
        }
        self._print_summary(conference, results, verbosity)

    def _bootstrap_society(self, data: dict[str, Any]) -> Society:
        """Create the society, or refresh its names if it already exists."""
        fields = _map_fields(data, _SOCIETY_FIELD_MAP)
        society, created = Society.objects.update_or_create(slug=data["slug"], defaults=fields)
        verb = "Created" if created else "Using"
        self.stdout.write(self.style.SUCCESS(f"  {verb} society: {society.name}"))
        return society

    def _bootstrap_conference(self, society: Society, conf: dict[str, Any], *, update: bool) -> Conference:
        """Create or update a Conference record from the parsed config.

        Raises:
            CommandError: If a conference with the same slug already exists and
                ``update`` is ``False``, or it belongs to another society.
        """
        slug = conf["slug"]
        fields = _map_fields(conf, _CONFERENCE_FIELD_MAP)

        existing = Conference.objects.filter(slug=slug).first()
        if existing and not update:
            raise CommandError(f"Conference with slug '{slug}' already exists. Use --update to update it.")

        if existing:
            if existing.society_id != society.pk:
                raise CommandError(f"Conference '{slug}' belongs to another society.")
            for attr, value in fields.items():
                setattr(existing, attr, value)
            existing.save()
            self.stdout.write(self.style.SUCCESS(f"  Updated conference: {existing.name}"))
            return existing

        conference = Conference.objects.create(society=society, slug=slug, **fields)
        self.stdout.write(self.style.SUCCESS(f"  Created conference: {conference.name}"))
        return conference

    def _bootstrap_periods(
        self,
        conference: Conference,
        periods_data: list[dict[str, Any]],
    ) -> tuple[list[RegistrationPeriod], list[RegistrationPeriod]]:
        """Create or update registration periods, matched by conference + name."""
        created: list[RegistrationPeriod] = []
        updated: list[RegistrationPeriod] = []

        for period_data in periods_data:
            fields = _map_fields(period_data, _PERIOD_FIELD_MAP)
            fields["period_type"] = str(fields["period_type"]).lower()
            fields["start_at"] = _aware(period_data["start"], conference.timezone, end_of_day=False)
            fields["end_at"] = _aware(period_data["end"], conference.timezone, end_of_day=True)
            fields["prices"] = period_data["prices"]

            period, was_created = RegistrationPeriod.objects.update_or_create(
                conference=conference,
                name=period_data["name"],
                defaults=fields,
            )
            if was_created:
                self.stdout.write(self.style.SUCCESS(f"  Created period: {period.name}"))
                created.append(period)
            else:
                self.stdout.write(self.style.SUCCESS(f"  Updated period: {period.name}"))
                updated.append(period)

        return created, updated

    def _bootstrap_grades(
        self,
        society: Society,
        grades_data: list[dict[str, Any]],
    ) -> tuple[list[GradeLabel], list[GradeLabel]]:
        """Create or update grade labels, matched by society + normalized code."""
        created: list[GradeLabel] = []
        updated: list[GradeLabel] = []

        for grade_data in grades_data:
            label, was_created = GradeLabel.objects.update_or_create(
                society=society,
                code=normalize_grade_key(grade_data["code"]),
                defaults=_map_fields(grade_data, _GRADE_FIELD_MAP),
            )
            (created if was_created else updated).append(label)

        return created, updated

    def _bootstrap_members(
        self,
        society: Society,
        members_data: list[dict[str, Any]],
    ) -> tuple[list[SocietyMember], list[SocietyMember]]:
        """Create or update roster rows, matched by license number (else member code).

        Usage state (``used``, reservations) is never touched.
        """
        created: list[SocietyMember] = []
        updated: list[SocietyMember] = []

        for member_data in members_data:
            fields = _map_fields(member_data, _MEMBER_FIELD_MAP)
            for key in ("license_number", "code"):
                if key in fields:
                    fields[key] = str(fields[key])
            lookup = (
                {"license_number": fields["license_number"]}
                if fields.get("license_number")
                else {"code": fields["code"]}
            )
            member, was_created = SocietyMember.objects.update_or_create(society=society, **lookup, defaults=fields)
            (created if was_created else updated).append(member)

        return created, updated

    def _print_dry_run(
        self,
        society_data: dict[str, Any],
        conf: dict[str, Any],
        periods_data: list[dict[str, Any]],
    ) -> None:
        """Print a preview of what would be created without touching the database."""
        self.stdout.write(self.style.MIGRATE_HEADING("\n[DRY RUN] No database changes will be made.\n"))
        self.stdout.write(self.style.MIGRATE_HEADING("Society:"))
        self.stdout.write(f"  Name:       {society_data['name']} ({society_data['slug']})")

        self.stdout.write(self.style.MIGRATE_HEADING("\nConference:"))
        self.stdout.write(f"  Name:       {conf['name']}")
        self.stdout.write(f"  Slug:       {conf['slug']}")
        self.stdout.write(f"  Dates:      {conf['start']} -- {conf['end']}")
        self.stdout.write(f"  Timezone:   {conf['timezone']}")
        self.stdout.write(f"  Provider:   {conf['payment_provider']}")
        if conf.get("venue"):
            self.stdout.write(f"  Venue:      {conf['venue']}")

        self.stdout.write(self.style.MIGRATE_HEADING(f"\nPeriods ({len(periods_data)}):"))
        for period in periods_data:
            self.stdout.write(f"  {period['name']} [{period['type']}] {period['start']} -- {period['end']}")
            for key, amount in period["prices"].items():
                self.stdout.write(f"      {key}: {amount:,}")

        self.stdout.write(self.style.MIGRATE_HEADING(f"\nGrade labels: {len(society_data['grades'])}"))
        self.stdout.write(self.style.MIGRATE_HEADING(f"Members: {len(society_data['members'])}"))
        self.stdout.write("")

    def _print_summary(
        self,
        conference: Conference,
        results: dict[str, tuple[list[Any], list[Any]]],
        verbosity: int,
    ) -> None:
        """Print a summary of all bootstrap operations performed."""
        self.stdout.write("")
        self.stdout.write(self.style.MIGRATE_HEADING("Bootstrap summary:"))
        self.stdout.write(f"  Conference:        {conference.name} ({conference.slug})")
        for label, (created, updated) in results.items():
            self.stdout.write(f"  {label.capitalize() + ' created:':<19}{len(created)}")
            self.stdout.write(f"  {label.capitalize() + ' updated:':<19}{len(updated)}")
            if verbosity >= 2:
                for obj in created:
                    self.stdout.write(f"    + {obj}")
                for obj in updated:
                    self.stdout.write(f"    ~ {obj}")

        self.stdout.write(self.style.SUCCESS("\nDone."))
