#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import random
from pathlib import Path

from faker import Faker

FAKER = Faker()


def _person(idx: int, companies: list[str]) -> dict:
    first = FAKER.first_name()
    last = FAKER.last_name()
    company = random.choice(companies) if random.random() < 0.7 else None
    domain = (company or "example").lower().replace(" ", "").replace(",", "") + ".com"
    emails = [{"value": f"{first}.{last}@{domain}".lower()}]
    if random.random() < 0.3:
        emails.append({"value": FAKER.free_email()})
    person = {
        "resourceName": f"people/c{idx:05d}",
        "names": [{"displayName": f"{first} {last}", "givenName": first, "familyName": last}],
        "emailAddresses": emails,
        "phoneNumbers": [{"value": FAKER.phone_number()}] if random.random() < 0.6 else [],
    }
    if company:
        person["organizations"] = [{"name": company, "title": FAKER.job()}]
    return person


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Create a sample contacts export in People API connections format."
    )
    parser.add_argument(
        "destination",
        nargs="?",
        default="./sample-contacts.json",
        help="Output JSON path (default: sample-contacts.json)",
    )
    parser.add_argument("--count", type=int, default=300, help="Number of contacts (default: 300)")
    args = parser.parse_args()

    random.seed(42)
    FAKER.seed_instance(42)
    companies = [FAKER.company() for _ in range(25)]
    payload = {"connections": [_person(idx, companies) for idx in range(args.count)]}

    dest = Path(args.destination).resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    print(f"Wrote {args.count} contacts to {dest}")


if __name__ == "__main__":
    main()
