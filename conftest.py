import pytest


@pytest.fixture
def customer(db):
    from apps.bookings.tests.helpers import make_user

    return make_user()


@pytest.fixture
def staff_user(db):
    from apps.bookings.tests.helpers import make_user

    return make_user(staff=True)


@pytest.fixture
def trek(db):
    from apps.bookings.tests.helpers import make_trek

    return make_trek()


@pytest.fixture
def batch(trek):
    from apps.bookings.tests.helpers import make_batch

    return make_batch(trek)
