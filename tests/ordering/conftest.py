import pytest
from ordering.catalogue import set_catalogue
from ordering.catalogue.memory_adapter import InMemoryCatalogue
from ordering.gateway import set_gateway
from ordering.gateway.fake_adapter import FakeGateway
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield

        from protean import current_domain

        for _, provider in current_domain.providers.items():
            provider._data_reset()

        current_domain.event_store.store._data_reset()


@pytest.fixture()
def catalogue():
    """An empty in-memory catalogue installed as the active one."""
    store = InMemoryCatalogue()
    set_catalogue(store)
    return store


@pytest.fixture()
def gateway():
    fake = FakeGateway()
    set_gateway(fake)
    return fake


@pytest.fixture()
def shipping_address():
    return {
        "full_name": "Asha Rao",
        "street": "12 MG Road",
        "city": "Bengaluru",
        "state": "KA",
        "postal_code": "560001",
        "country": "IN",
    }
