import asyncio
import json
import sys
import argparse
import httpx
from core.controller import AutomationController
from core.page_pool import PagePool
from core.queue_client import HttpQueueClient
from utils.exceptions import ValidationError
from utils.logger import setup_logger
from utils.validators import TaskValidator, parse_params_json
from config.settings import settings

logger = setup_logger(__name__)

def print_banner(title: str):
    print("\n" + "="*60)
    print(f"🚀 {title}")
    print("="*60)
    print("\n🔧 Active Features:")
    for feature, enabled in settings.get_feature_flags().items():
        status = "✓ Enabled" if enabled else "✗ Disabled"
        print(f"  {feature:25s} {status}")
    print()

def run_server(args):
    import uvicorn

    if args.embedded_controller:
        settings.EMBEDDED_CONTROLLER = True
    print_banner("Browser Task Relay - API")
    uvicorn.run("api.server:app", host=args.host, port=args.port)

async def run_controller(args):
    """Run a standalone controller against a remote queue until interrupted."""
    print_banner("Browser Task Relay - Controller")
    controller = AutomationController(
        client=HttpQueueClient(base_url=args.queue_url),
        page_pool=PagePool(headless=not args.headed),
        enabled=True
    )

    check = await controller.test_connection()
    if check["ok"]:
        print(f"✓ Queue reachable at {args.queue_url} ({check['status'].get('pending_count', 0)} pending)")
    else:
        print(f"⚠️  Queue not reachable yet: {check['error']} - will keep polling")

    await controller.page_pool.initialize()
    try:
        await controller.run()
    finally:
        await controller.stop()

async def enqueue_task(args) -> int:
    try:
        body = {
            "action": args.action,
            "target_url": args.url,
            "params": parse_params_json(args.params),
            "ttl_seconds": args.ttl
        }
        TaskValidator.validate_task_request(body)
    except ValidationError as e:
        print(f"❌ {e}")
        return 1

    async with httpx.AsyncClient(base_url=args.queue_url + settings.API_PREFIX) as client:
        try:
            response = await client.post("/tasks", json={k: v for k, v in body.items() if v is not None})
        except httpx.HTTPError as e:
            print(f"❌ Queue unreachable: {e}")
            return 1

    if response.status_code != 201:
        print(f"❌ Rejected (HTTP {response.status_code}): {response.text}")
        return 1

    task = response.json()
    print(f"✓ Enqueued {task['action']} task {task['id']} (ttl {task['ttl_seconds']}s)")
    return 0

async def show_status(args) -> int:
    client = HttpQueueClient(base_url=args.queue_url)
    try:
        status = await client.fetch_queue_status()
    finally:
        await client.aclose()

    if status is None:
        print(f"❌ Queue unreachable: {client.last_error}")
        return 1

    print(f"Pending: {status['pending_count']}  In queue: {status['total_in_queue']}  "
          f"Results: {status['results_stored']}")
    for result in status.get('recent_results', []):
        detail = result.get('error') or json.dumps(result.get('data'), default=str)[:80]
        print(f"  {result['completed_at']}  {result['task_id'][:8]}  {result['status']:8s} {detail}")
    return 0

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Humanized browser task relay: queue API and automation controller",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --embedded-controller
  python main.py controller --queue-url http://localhost:8000 --headed
  python main.py enqueue --action navigate --url https://example.com
  python main.py enqueue --action click --url https://example.com --params '{"selector": "a"}'
  python main.py status
        """
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the queue API")
    serve.add_argument("--host", default=settings.API_HOST)
    serve.add_argument("--port", type=int, default=settings.API_PORT)
    serve.add_argument("--embedded-controller", action="store_true",
                       help="Also run a controller inside the API process")

    controller = sub.add_parser("controller", help="Poll a queue and run tasks in a browser")
    controller.add_argument("--queue-url", default=settings.QUEUE_BASE_URL)
    controller.add_argument("--headed", action="store_true", help="Show the browser window")

    enqueue = sub.add_parser("enqueue", help="Submit a task")
    enqueue.add_argument("--action", required=True)
    enqueue.add_argument("--url", help="Target URL")
    enqueue.add_argument("--params", default="", help="Params as a JSON object")
    enqueue.add_argument("--ttl", type=float, help="TTL in seconds")
    enqueue.add_argument("--queue-url", default=settings.QUEUE_BASE_URL)

    status = sub.add_parser("status", help="Show the queue summary")
    status.add_argument("--queue-url", default=settings.QUEUE_BASE_URL)

    return parser

def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        run_server(args)
        return 0
    if args.command == "controller":
        asyncio.run(run_controller(args))
        return 0
    if args.command == "enqueue":
        return asyncio.run(enqueue_task(args))
    return asyncio.run(show_status(args))

if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\n👋 Goodbye!")
        sys.exit(0)
