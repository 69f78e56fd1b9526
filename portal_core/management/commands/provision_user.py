from getpass import getpass

from django.core.management.base import BaseCommand, CommandError
from rest_framework.exceptions import ValidationError

from portal_core.models import UserRole
from portal_core.services.users import create_account


class Command(BaseCommand):
    help = "Create a portal account (login + profile). Use it to bootstrap the first lab director."

    def add_arguments(self, parser):
        parser.add_argument("email")
        parser.add_argument("--full-name", required=True)
        parser.add_argument("--role", required=True, choices=UserRole.values)
        parser.add_argument("--organization", default="")
        parser.add_argument("--password", default="", help="Prompted for when omitted")

    def handle(self, *args, **options):
        password = options["password"] or getpass("Password: ")

        try:
            user = create_account(
                email=options["email"],
                password=password,
                full_name=options["full_name"],
                role=options["role"],
                organization=options["organization"],
            )
        except ValidationError as e:
            raise CommandError(f"Could not create user: {e.detail}")

        self.stdout.write(
            self.style.SUCCESS(f"Created {options['role']} {user.username} (id={user.pk})")
        )
