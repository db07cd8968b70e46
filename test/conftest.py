import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def publish(self, channel, event, payload=None):
        self.events.append((channel, event, payload))
        return 1

    def on(self, channel, event):
        return [payload for ch, ev, payload in self.events if ch == channel and ev == event]


def seed_store(repo, stock: int = 5, price: float = 10000.0, cost: float = 6000.0):
    """Owner + branch + cashier + one product; returns (owner, branch, cashier, product)."""
    from kasira.domain.models import Branch, Product, User

    owner = repo.create_user(
        User(id="USR-OWNER", name="Budi", email="owner@kasira.test", role="owner", status="active")
    )
    branch = repo.create_branch(Branch(id="BR-A", name="Cabang A", location="Jakarta", owner_id=owner.id))
    cashier = repo.create_user(
        User(id="USR-KASIR", name="Andi", email="kasir@kasira.test", role="cashier", branch_id=branch.id)
    )
    product = repo.create_product(
        Product(
            id="PRD-1",
            name="Kopi Susu",
            category="Minuman",
            branch_id=branch.id,
            price=price,
            cost_price=cost,
            stock=stock,
        )
    )
    return owner, branch, cashier, product
