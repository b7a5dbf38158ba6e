import argparse
from datetime import datetime, timezone

from dateutil import parser as date_parser
from loguru import logger

from app.core.config import get_settings
from app.db import init_db, session_scope
from app.domain import QuestionType
from app.repositories import MarketRepository
from app.resolution import infer_question_type
from app.resolution.extraction import extract_token_symbol
from app.resolution.errors import ExtractionError
from app.services.question_service import TIMEFRAMES, closing_date_for, generate_questions
from market_data import MarketDataFetcher


def _parse_datetime(value: str) -> datetime:
    parsed = date_parser.isoparse(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create resolvable markets")
    parser.add_argument("--question", default=None, help="Question text for a single market")
    parser.add_argument(
        "--closing-date",
        type=_parse_datetime,
        default=None,
        help="ISO-8601 closing timestamp (defaults to now + timeframe)",
    )
    parser.add_argument(
        "--type",
        dest="question_type",
        choices=[question_type.value for question_type in QuestionType],
        default=None,
        help="Detailed question type (inferred from the question when omitted)",
    )
    parser.add_argument("--criteria", default=None, help="Resolution criteria text")
    parser.add_argument(
        "--suggest",
        metavar="SYMBOL",
        default=None,
        help="Generate questions for SYMBOL from live market data instead of --question",
    )
    parser.add_argument("--timeframe", choices=sorted(TIMEFRAMES), default="24H")
    parser.add_argument("--count", type=int, default=3, help="Number of suggested markets to create")
    parser.add_argument("--dry-run", action="store_true", help="Log markets without inserting them")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    settings = get_settings()
    if not args.question and not args.suggest:
        raise SystemExit("Either --question or --suggest is required")

    closing_date = args.closing_date or closing_date_for(args.timeframe)
    drafts: list[dict[str, object]] = []

    if args.suggest:
        symbol = args.suggest.upper()
        with MarketDataFetcher(settings=settings) as fetcher:
            token = fetcher.get_token_snapshot(symbol)
        for suggestion in generate_questions(token, args.timeframe)[: args.count]:
            drafts.append(
                {
                    "question": suggestion.question,
                    "question_type_detailed": suggestion.question_type.value,
                    "resolution_criteria": suggestion.resolution_criteria,
                    "token_symbol": symbol,
                }
            )
    else:
        try:
            symbol = extract_token_symbol(args.question, settings.token_allowlist)
        except ExtractionError:
            logger.warning("Question does not mention a supported token; it will resolve via fallback")
            symbol = None
        drafts.append(
            {
                "question": args.question,
                "question_type_detailed": args.question_type
                or infer_question_type(args.question).value,
                "resolution_criteria": args.criteria,
                "token_symbol": symbol,
            }
        )

    if args.dry_run:
        for draft in drafts:
            logger.info("Would create market closing {}: {}", closing_date.isoformat(), draft)
        return

    init_db()
    with session_scope() as session:
        repo = MarketRepository(session)
        for draft in drafts:
            market = repo.create_market(closing_date=closing_date, **draft)
            logger.info(
                "Created market {} ({}) closing {}",
                market.market_id,
                market.question_type_detailed,
                closing_date.isoformat(),
            )

    logger.info("Created {} markets", len(drafts))


if __name__ == "__main__":
    main()
