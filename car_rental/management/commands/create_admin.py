from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand


class Command(BaseCommand):
    help = 'Create the back office admin account if it does not exist'

    def add_arguments(self, parser):
        parser.add_argument('--email', default='admin@example.com')
        parser.add_argument('--password', default='adminpassword123')
        parser.add_argument('--name', default='Admin User')

    def handle(self, *args, **options):
        User = get_user_model()
        email = options['email'].lower()

        if User.objects.filter(username=email).exists():
            self.stdout.write(self.style.WARNING('Admin user already exists'))
            return

        User.objects.create_user(
            username=email,
            email=email,
            password=options['password'],
            first_name=options['name'],
            is_staff=True,
        )
        self.stdout.write(self.style.SUCCESS(f'Admin user created: {email}'))
