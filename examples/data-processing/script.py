from collections import Counter, defaultdict
from statistics import mean

orders = [
    {"id": 1, "customer": "alice", "category": "books", "amount": 12.50},
    {"id": 2, "customer": "bob", "category": "games", "amount": 59.99},
    {"id": 3, "customer": "alice", "category": "games", "amount": 19.99},
    {"id": 4, "customer": "carol", "category": "books", "amount": 8.75},
    {"id": 5, "customer": "bob", "category": "music", "amount": 5.00},
    {"id": 6, "customer": "alice", "category": "books", "amount": 23.25},
]

totals = defaultdict(float)
for order in orders:
    totals[order["customer"]] += order["amount"]

print("Revenue by customer:")
for customer, total in sorted(totals.items(), key=lambda item: -item[1]):
    print(f"  {customer}: {total:.2f}")

by_category = Counter(order["category"] for order in orders)
print(f"Orders per category: {dict(sorted(by_category.items()))}")
print(f"Average order: {mean(o['amount'] for o in orders):.2f}")
print(f"Orders over 20.00: {[o['id'] for o in orders if o['amount'] > 20]}")

json.dumps({"customers": len(totals), "orders": len(orders)})
