from django.core.management.base import BaseCommand
from car_rental.models import Car


class Command(BaseCommand):
    help = 'Populate database with sample rental cars'

    def handle(self, *args, **options):
        cars_data = [
            {
                'brand': 'Toyota',
                'model': 'Prius',
                'category': Car.Category.SEDAN,
                'year': 2023,
                'price_per_day': 8500,
                'features': ['Hybrid Tech', 'Reverse Camera', 'Dual-Zone A/C', 'Cruise Control'],
                'fuel_type': Car.FuelType.HYBRID,
                'transmission': Car.Transmission.AUTOMATIC,
                'seats': 5,
                'location': 'Colombo',
                'description': 'Fuel efficient hybrid sedan for city driving'
            },
            {
                'brand': 'Suzuki',
                'model': 'Alto',
                'category': Car.Category.HATCHBACK,
                'year': 2022,
                'price_per_day': 4500,
                'features': ['Compact Design', 'Great Fuel Economy', 'Easy Parking'],
                'fuel_type': Car.FuelType.PETROL,
                'transmission': Car.Transmission.MANUAL,
                'seats': 4,
                'location': 'Kandy',
                'description': 'Small hatchback that fits anywhere'
            },
            {
                'brand': 'Mitsubishi',
                'model': 'Montero Sport',
                'category': Car.Category.SUV,
                'year': 2024,
                'price_per_day': 45000,
                'features': ['Leather Interior', '4x4 Drive', 'Panoramic Sunroof', 'Premium Audio'],
                'fuel_type': Car.FuelType.DIESEL,
                'transmission': Car.Transmission.AUTOMATIC,
                'seats': 7,
                'location': 'Colombo',
                'description': 'Seven seat 4x4 for long trips'
            },
            {
                'brand': 'Honda',
                'model': 'Vezel',
                'category': Car.Category.SUV,
                'year': 2023,
                'price_per_day': 15000,
                'features': ['Sensing Tech', 'Magic Seats', 'Auto Brake', 'LED Headlights'],
                'fuel_type': Car.FuelType.HYBRID,
                'transmission': Car.Transmission.AUTOMATIC,
                'seats': 5,
                'location': 'Galle',
                'description': 'Compact hybrid crossover'
            },
            {
                'brand': 'Toyota',
                'model': 'KDH Super GL',
                'category': Car.Category.VAN,
                'year': 2022,
                'price_per_day': 18000,
                'features': ['Full A/C', 'Adjustable Seats', 'DVD Player', 'Spacious Interior'],
                'fuel_type': Car.FuelType.DIESEL,
                'transmission': Car.Transmission.AUTOMATIC,
                'seats': 10,
                'location': 'Negombo',
                'description': 'Ten seat van for groups'
            },
            {
                'brand': 'Nissan',
                'model': 'Leaf',
                'category': Car.Category.ELECTRIC,
                'year': 2023,
                'price_per_day': 12000,
                'features': ['Zero Emissions', 'Quiet Drive', 'Eco Mode', 'Fast Charge Support'],
                'fuel_type': Car.FuelType.ELECTRIC,
                'transmission': Car.Transmission.AUTOMATIC,
                'seats': 5,
                'location': 'Colombo',
                'description': 'Fully electric hatchback'
            }
        ]

        for car_data in cars_data:
            car, created = Car.objects.get_or_create(
                brand=car_data['brand'],
                model=car_data['model'],
                defaults=car_data
            )

            if created:
                self.stdout.write(f'Created car: {car.brand} {car.model} ({car.category})')
            else:
                self.stdout.write(f'Car {car.brand} {car.model} already exists')

        self.stdout.write(
            self.style.SUCCESS('Successfully populated database with sample cars')
        )
