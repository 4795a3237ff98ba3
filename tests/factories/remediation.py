"""
Remediation (rooms and measurements) factories.
"""

import factory
from faker import Faker

fake = Faker()


class MeasurementFactory(factory.Factory):
    class Meta:
        model = dict

    description = factory.LazyFunction(
        lambda: fake.random_element(["Drywall removal", "HEPA vacuum", "Antimicrobial", "Baseboard"])
    )
    quantity = factory.LazyFunction(lambda: fake.random_int(min=1, max=120))


class RoomFactory(factory.Factory):
    class Meta:
        model = dict

    name = factory.LazyFunction(
        lambda: fake.random_element(["Kitchen", "Basement", "Master Bath", "Laundry"])
    )
    measurements = factory.LazyFunction(lambda: MeasurementFactory.create_batch(2))
    photos = factory.LazyFunction(list)


class RemediationFactory(factory.Factory):
    class Meta:
        model = dict

    rooms = factory.LazyFunction(lambda: RoomFactory.create_batch(2))
