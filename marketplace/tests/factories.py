from decimal import Decimal

import factory
from django.contrib.auth import get_user_model

from marketplace.models import Order, OrderStatusChange, SellerAccount


User = get_user_model()


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = User

    username = factory.Sequence(lambda n: f"user_{n}")
    email = factory.Sequence(lambda n: f"user_{n}@example.com")
    first_name = factory.Faker("first_name")
    last_name = factory.Faker("last_name")
    password = factory.django.Password("defaultpassword")
    is_active = True


class StaffFactory(UserFactory):
    is_staff = True
    username = factory.Sequence(lambda n: f"staff_{n}")
    email = factory.Sequence(lambda n: f"staff_{n}@example.com")


class SellerAccountFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = SellerAccount
        django_get_or_create = ("seller",)

    seller = factory.SubFactory(UserFactory)
    payout_destination = factory.Sequence(lambda n: f"acct_test{n:06d}")
    is_verified = True

    class Params:
        unonboarded = factory.Trait(payout_destination="", is_verified=False)


class OrderFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Order
        skip_postgeneration_save = True

    buyer = factory.SubFactory(UserFactory)
    seller = factory.LazyAttribute(lambda o: SellerAccountFactory().seller)
    status = "pending"
    total_amount = Decimal("100.00")
    currency = "usd"
    shipping_address = factory.LazyFunction(
        lambda: {
            "name": "Test Buyer",
            "line1": "1 Market Street",
            "city": "Lisbon",
            "postal_code": "1100-001",
            "country": "PT",
        }
    )
    payment_method = "pm_card_visa"

    @factory.post_generation
    def audit_trail(self, create, extracted, **kwargs):
        if create:
            OrderStatusChange.objects.create(order=self, from_status="", to_status=self.status, reason="Order placed")
