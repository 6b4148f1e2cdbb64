"""QuoteScout - contractor quote search

Simple CLI for running one quote search from the terminal.
"""

import argparse
import asyncio
import json
import uuid

from app.agents.orchestrator import QuoteSearchOrchestrator
from app.models.quote import SearchContext
from app.services.broadcaster import ProgressBroadcaster, Subscriber
from app.services.session_registry import SessionRegistry


def print_event(payload: dict) -> bool:
    """Print one progress event; returns True once the search is over."""
    event_type = payload.get("type")

    if event_type == "session_update":
        worker = payload.get("session", {})
        print(
            f"[{worker.get('platform')}] {worker.get('status'):<12} "
            f"{worker.get('progress', 0):>3}%  {worker.get('currentAction', '')}"
        )

    elif event_type == "contractors_found":
        contractors = payload.get("contractors", [])
        print(f"\n[+] {len(contractors)} contractors from {payload.get('platform', 'all platforms')}:")
        for c in contractors:
            price = c.get("price") or "quote needed"
            print(f"  - {c.get('name')}  {c.get('rating')}* ({c.get('reviewCount')} reviews)  {price}")
            print(f"    {c.get('profileUrl')}")

    elif event_type == "complete":
        print(f"\n[*] {payload.get('message')}")
        return True

    elif event_type == "error":
        print(f"\n[!] Error: {payload.get('message', 'Unknown error')}")
        return True

    return False


async def run_quote_search(zip_code: str, context: SearchContext, city: str = "", job_id: str | None = None):
    """Run a quote search and print progress until it finishes."""
    job_id = job_id or uuid.uuid4().hex[:12]
    print(f"Quote search {job_id}: {context.category or 'handyman'} near {zip_code}")
    print("-" * 50)

    registry = SessionRegistry()
    broadcaster = ProgressBroadcaster(registry)
    orchestrator = QuoteSearchOrchestrator(registry, broadcaster)

    subscriber = Subscriber(job_id)
    try:
        result = await orchestrator.start_search(job_id, zip_code, city, context)
        broadcaster.subscribe(result.job_id, subscriber)
        # Workers were announced before the subscriber attached.
        for worker in registry.require(result.job_id).workers:
            print_event({"type": "session_update", "session": worker.to_dict()})

        while True:
            delivery = await subscriber.receive()
            if delivery is not None and print_event(json.loads(delivery[1])):
                break
    finally:
        broadcaster.unsubscribe(job_id, subscriber)
        await orchestrator.shutdown()
        registry.close()


def main():
    parser = argparse.ArgumentParser(description="QuoteScout contractor quote search")
    parser.add_argument("--zip", "-z", required=True, dest="zip_code", help="Job zip code")
    parser.add_argument("--city", "-c", default="", help="City name")
    parser.add_argument("--category", default="Other", help="Job category, e.g. Plumbing")
    parser.add_argument("--subcategory", default="", help="Type of work, e.g. 'faucet repair'")
    parser.add_argument("--problem", "-p", default="", help="One-sentence problem summary")
    parser.add_argument("--scope", default="", help="Scope of work summary")
    parser.add_argument("--job-id", help="Job id (default: random)")

    args = parser.parse_args()
    context = SearchContext(
        category=args.category,
        subcategory=args.subcategory,
        problem_summary=args.problem,
        scope_of_work=args.scope,
    )

    asyncio.run(run_quote_search(args.zip_code, context, args.city, args.job_id))


if __name__ == "__main__":
    main()
