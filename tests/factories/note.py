"""
Ticket note factory.
"""

import factory
from faker import Faker

fake = Faker()


class NoteFactory(factory.Factory):
    class Meta:
        model = dict

    message = factory.LazyFunction(fake.sentence)
    userId = factory.LazyFunction(lambda: fake.uuid4())
    userName = factory.LazyFunction(fake.name)
