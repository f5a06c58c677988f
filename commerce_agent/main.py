"""
Commerce Agent Core - Main Application Entry Point

AI Assistant Notes:
- CLI for local chat testing and memory maintenance
- Commands: init, chat, sweep, audit, repair, wipe, stats
- The tier-1 cache lives in this process, so sweep/audit only see keys
  written during the same run; durable work always applies
- Database connections are closed and Langfuse is flushed on exit
"""

import argparse
import asyncio
import logging
import sys
import uuid
from typing import Optional

from commerce_agent.config import settings
from commerce_agent.database import (
    ConversationMemoryRepository,
    DatabaseConnection,
    DatabaseMigrations,
    OrderRepository,
    ShippingZoneRepository,
)
from commerce_agent.errors import CommerceAgentError
from commerce_agent.llm import OpenRouterClient
from commerce_agent.memory import MemoryStore, TenantScopedKey
from commerce_agent.orchestrator import ConversationOrchestrator
from commerce_agent.orders import OrderExtractionEngine
from commerce_agent.utils import langfuse_client

logger = logging.getLogger(__name__)


class CommerceAgentApp:
    """
    Wires the database, memory, engine and orchestrator together for the CLI.
    """

    def __init__(self, database_path: Optional[str] = None):
        self.database_path = database_path or settings.database_path
        self.db_connection: Optional[DatabaseConnection] = None
        self.memory: Optional[MemoryStore] = None
        self.orchestrator: Optional[ConversationOrchestrator] = None
        self._cleaned_up = False

    def initialize_database(self) -> None:
        """Open the database and apply pending migrations."""
        self.db_connection = DatabaseConnection(self.database_path)
        DatabaseMigrations(self.db_connection).run_migrations()
        self.memory = MemoryStore(ConversationMemoryRepository(self.db_connection))

    def initialize(self) -> None:
        """Initialize everything needed to chat."""
        self.initialize_database()
        engine = OrderExtractionEngine(
            memory=self.memory,
            llm_client=OpenRouterClient(),
            order_repository=OrderRepository(self.db_connection),
            shipping_lookup=ShippingZoneRepository(self.db_connection)
        )
        self.orchestrator = ConversationOrchestrator(self.memory, engine)
        logger.info("Commerce agent initialized")

    async def run_chat(self, tenant_id: str, participant_id: Optional[str], conversation_id: Optional[str]) -> None:
        """Interactive chat loop against the order extraction pipeline."""
        participant_id = participant_id or f"cli_{uuid.uuid4().hex[:12]}"
        conversation_id = conversation_id or uuid.uuid4().hex[:12]
        key = TenantScopedKey(tenant_id, participant_id, conversation_id)

        print("🛒 Commerce Agent - Interactive Mode")
        print(f"🔑 Tenant: {tenant_id}  Participant: {participant_id}  Conversation: {conversation_id}")
        print("Type 'quit' or 'exit' to leave")
        print("-" * 50)

        while True:
            try:
                message = input("\nYou: ").strip()
            except (KeyboardInterrupt, EOFError):
                print("\nGoodbye! 👋")
                return

            if message.lower() in ("quit", "exit"):
                print("Goodbye! 👋")
                return
            if not message:
                continue

            response = await self.orchestrator.handle_message(key, message)
            if response.duplicate:
                print("(duplicate message ignored)")
                continue

            print(f"\n🤖 Assistant [{response.status}]:")
            print(response.answer)
            if response.order_number:
                print(f"\n📦 Order Created: {response.order_number}")
            if settings.debug:
                print(f"   Processing Time: {response.processing_time:.2f}s")
                print(f"   Missing Fields: {response.metadata.get('missing_fields')}")

    def cleanup(self) -> None:
        """Close connections and flush traces."""
        if self._cleaned_up:
            return
        try:
            if self.db_connection:
                self.db_connection.close_all_connections()
                logger.info("Database connection closed")
            langfuse_client.flush()
        finally:
            self._cleaned_up = True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Commerce Agent Core")
    parser.add_argument(
        'command',
        choices=['init', 'chat', 'sweep', 'audit', 'repair', 'wipe', 'stats'],
        help='Command to execute'
    )
    parser.add_argument('--tenant-id', type=str, help='Tenant identifier')
    parser.add_argument('--participant-id', type=str, help='Participant (customer) identifier')
    parser.add_argument('--conversation-id', type=str, help='Conversation identifier')
    parser.add_argument('--default-tenant', type=str, help='Tenant that receives orphaned records on repair')
    parser.add_argument('--database', type=str, help='Database path override')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')
    return parser


async def main(argv: Optional[list] = None) -> int:
    """Main entry point for the commerce agent CLI."""
    args = build_parser().parse_args(argv)

    if args.debug:
        settings.debug = True
        logging.getLogger().setLevel(logging.DEBUG)

    app = CommerceAgentApp(database_path=args.database)

    try:
        if args.command == 'init':
            app.initialize_database()
            print("Database initialized successfully!")

        elif args.command == 'chat':
            if not args.tenant_id:
                print("Error: --tenant-id is required for chat")
                return 1
            app.initialize()
            await app.run_chat(args.tenant_id, args.participant_id, args.conversation_id)

        elif args.command == 'sweep':
            app.initialize_database()
            report = await app.memory.sweep(args.tenant_id)
            print(f"Purged durable records: {report.purged_durable}")
            print(f"Evicted cached keys: {report.evicted_cached}")

        elif args.command == 'audit':
            app.initialize_database()
            report = await app.memory.audit_isolation()
            print(f"Isolation clean: {'✅' if report.is_clean else '❌'}")
            print(f"  Orphaned durable records: {report.orphaned_durable_records}")
            for cache_key in report.orphaned_cache_keys:
                print(f"  Orphaned cache key: {cache_key}")

        elif args.command == 'repair':
            if not args.default_tenant:
                print("Error: --default-tenant is required for repair")
                return 1
            app.initialize_database()
            report = await app.memory.repair_isolation(args.default_tenant)
            print(f"Reassigned durable records: {report.reassigned_durable}")
            print(f"Rekeyed cache entries: {len(report.rekeyed_cache)}")

        elif args.command == 'wipe':
            if not args.tenant_id or not args.participant_id:
                print("Error: --tenant-id and --participant-id are required for wipe")
                return 1
            app.initialize_database()
            key = TenantScopedKey(args.tenant_id, args.participant_id, args.conversation_id)
            removed = await app.memory.wipe_participant(key)
            print(f"Removed {removed} records for {args.participant_id}")

        elif args.command == 'stats':
            app.initialize_database()
            stats = await app.memory.get_stats(args.tenant_id)
            print("Memory Statistics:")
            print(f"  Durable records: {stats.durable_records}")
            print(f"  Unique participants: {stats.unique_participants}")
            print(f"  Retention: {stats.retention_days} days")
            print(f"  Scoped to tenant: {stats.isolated}")

    except CommerceAgentError as e:
        logger.error(f"Command failed: {e}")
        print(f"Error: {e}")
        return 1
    finally:
        app.cleanup()

    return 0


def run() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
