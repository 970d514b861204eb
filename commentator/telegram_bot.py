"""Telegram commentator bot: /start <address>, /end and /check."""
import asyncio
import html
from datetime import datetime, timezone
from typing import Optional

from loguru import logger
from telegram import Update
from telegram.error import BadRequest, Forbidden
from telegram.ext import Application, CommandHandler, ContextTypes

from commentator.commentary import format_price, format_usd
from commentator.config import config
from commentator.market_data import MarketDataError
from commentator.session import MarketUpdate, SessionRegistry, SessionSummary, TrackingSession
from commentator.utils.logger import setup_logging

MAX_CAPTION_CHARS = 1024  # Telegram photo caption limit


def _job_name(chat_id: int) -> str:
    return f"market_update_{chat_id}"


def _registry(context: ContextTypes.DEFAULT_TYPE) -> SessionRegistry:
    return context.bot_data.setdefault("sessions", SessionRegistry())


def _cancel_update_job(context: ContextTypes.DEFAULT_TYPE, chat_id: int) -> None:
    if context.job_queue is None:
        return
    for job in context.job_queue.get_jobs_by_name(_job_name(chat_id)):
        job.schedule_removal()


def _is_chat_gone(error: Exception) -> bool:
    """True if the bot can no longer post to the chat (kicked, blocked, deleted)."""
    if isinstance(error, Forbidden):
        return True
    return isinstance(error, BadRequest) and "chat not found" in str(error).lower()


def format_uptime(started_at: datetime, now: Optional[datetime] = None) -> str:
    seconds = int(((now or datetime.now(timezone.utc)) - started_at).total_seconds())
    hours, remainder = divmod(max(seconds, 0), 3600)
    return f"{hours}h {remainder // 60}m"


def format_summary(summary: SessionSummary) -> str:
    """Telegram HTML for the /end session summary."""
    name = html.escape(summary.name or summary.address, quote=False)
    address = html.escape(summary.address, quote=False)
    if summary.pnl is None:
        return (
            f"🎙️ THAT'S ALL FOLKS! Stopped tracking <code>{address}</code>. "
            "No price updates were recorded. 👋"
        )
    return "\n".join([
        f"🎙️ THAT'S ALL FOLKS! Stopped tracking <b>{name}</b>! Thanks for tuning in! 👋",
        "",
        "<b>Trading Session Summary</b>:",
        f"• Final PnL: {summary.pnl.pnl_pct:+.2f}% ({format_usd(summary.pnl.pnl_usd)} on {format_usd(summary.pnl.position_usd)})",
        f"• Peak Price: {format_price(summary.peak_price)}",
        f"• Lowest Price: {format_price(summary.low_price)}",
        f"• Entry Price: {format_price(summary.entry_price)}",
        f"• Final Price: {format_price(summary.final_price)}",
        f"• Updates: {summary.updates}",
    ])


async def _poll_and_render(session: TrackingSession) -> tuple:
    """Run the blocking fetch and chart render off the event loop."""
    loop = asyncio.get_event_loop()
    update: Optional[MarketUpdate] = await loop.run_in_executor(None, session.poll)
    if update is None or session.closed:
        return None, None
    chart = await loop.run_in_executor(None, session.render_chart)
    return update, chart


async def send_market_update(bot, session: TrackingSession) -> None:
    """Poll the session and post chart + commentary to its chat.

    Nothing is sent if the session was ended (/end or a replacing /start)
    while the poll was in flight.
    """
    update, chart = await _poll_and_render(session)
    if update is None or session.closed:
        logger.info(f"Chat {session.chat_id}: tracking of {session.address} ended; update dropped")
        return
    if len(update.text) <= MAX_CAPTION_CHARS:
        await bot.send_photo(chat_id=session.chat_id, photo=chart, caption=update.text, parse_mode="HTML")
    else:
        await bot.send_photo(chat_id=session.chat_id, photo=chart)
        await bot.send_message(chat_id=session.chat_id, text=update.text, parse_mode="HTML")


async def _market_update_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Repeating job: post one update for the chat's tracked pool.

    Fetch failures are logged and the session kept for the next tick; losing
    access to the chat ends the session.
    """
    chat_id = context.job.chat_id
    registry = _registry(context)
    session = registry.get(chat_id)
    if session is None or session.closed:
        context.job.schedule_removal()
        return

    try:
        await send_market_update(context.bot, session)
    except MarketDataError as e:
        logger.warning(f"Chat {chat_id}: market data unavailable for {session.address}: {e}")
    except (Forbidden, BadRequest) as e:
        if not _is_chat_gone(e):
            logger.error(f"Chat {chat_id}: Telegram rejected update: {e}")
            return
        logger.error(f"Chat {chat_id}: lost access ({e}); stopping tracking of {session.address}")
        registry.end(chat_id)
        context.job.schedule_removal()
    except Exception:
        logger.exception(f"Chat {chat_id}: error in update loop")


async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start <address>: track a pool in this chat and post updates on a schedule."""
    args = context.args or []
    if not args:
        await update.message.reply_text(
            "Usage: /start &lt;pool address&gt;\n\n"
            f"Tracks a {config.geckoterminal_network} pool on GeckoTerminal and posts a chart with commentary "
            f"every {config.update_interval_minutes} min. Use /end to stop and /check for status.",
            parse_mode="HTML",
        )
        return

    address = args[0].strip()
    shown = html.escape(address, quote=False)
    chat_id = update.effective_chat.id
    registry = _registry(context)

    _cancel_update_job(context, chat_id)
    session = registry.start(address, chat_id)
    logger.info(f"Chat {chat_id}: start tracking {address}")

    await update.message.reply_text(
        f"🎙️ ALRIGHT FOLKS! Starting to track <code>{shown}</code> in this chat! "
        f"Updates every {config.update_interval_minutes} min! LET'S GET THIS PARTY STARTED! 🎉",
        parse_mode="HTML",
    )

    try:
        await send_market_update(context.bot, session)
    except Exception as e:
        logger.error(f"Chat {chat_id}: error during start for {address}: {e}")
        registry.end(chat_id)
        await update.message.reply_text(
            "❌ Error starting tracking. Please check the pool address and try again!"
        )
        return

    if context.job_queue is None:
        logger.warning(
            "JobQueue not available; only the first update was sent. "
            "Install with: pip install \"python-telegram-bot[job-queue]\""
        )
        return

    interval = config.update_interval_minutes * 60
    context.job_queue.run_repeating(
        _market_update_job,
        interval=interval,
        first=interval,
        chat_id=chat_id,
        name=_job_name(chat_id),
    )
    logger.info(f"Chat {chat_id}: update job scheduled every {config.update_interval_minutes} min")


async def cmd_end(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /end: stop tracking and reply with the session summary."""
    chat_id = update.effective_chat.id
    _cancel_update_job(context, chat_id)
    session = _registry(context).end(chat_id)
    if session is None:
        await update.message.reply_text("❌ No token currently being tracked!")
        return

    logger.info(f"Chat {chat_id}: stopped tracking {session.address} after {session.updates} updates")
    await update.message.reply_text(format_summary(session.summary()), parse_mode="HTML")


async def cmd_check(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /check: uptime and what this chat is tracking."""
    chat_id = update.effective_chat.id
    registry = _registry(context)
    session = registry.get(chat_id)
    started_at = context.bot_data.get("started_at") or datetime.now(timezone.utc)

    tracking = f"<code>{html.escape(session.address, quote=False)}</code>" if session else "No token set"
    lines = [
        "🎙️ <b>CRYPTO COMMENTATOR STATUS CHECK!</b> 🎙️",
        "",
        "ABSOLUTELY FANTASTIC NEWS, FOLKS! I'M ALIVE AND KICKING! 🎉",
        "",
        f"🕒 Uptime: {format_uptime(started_at)}",
        f"🎯 Tracking: {tracking}",
        f"📢 Broadcasting to: {'this chat' if session else 'No chat set'}",
        f"📡 Active sessions: {len(registry)}",
    ]
    if session and session.last_price is not None:
        lines.append(f"💰 Last price: {format_price(session.last_price)} ({session.updates} updates)")
    await update.message.reply_text("\n".join(lines), parse_mode="HTML")


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log errors and tell the user something went wrong."""
    logger.opt(exception=context.error).error("Exception while handling an update")
    if update and isinstance(update, Update) and update.effective_message:
        await update.effective_message.reply_text(
            "Something went wrong on my side, please try again in a moment."
        )


def build_application(token: str) -> Application:
    """Create the Telegram application with command handlers registered."""
    app = Application.builder().token(token).build()
    app.bot_data["sessions"] = SessionRegistry()
    app.bot_data["started_at"] = datetime.now(timezone.utc)

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("end", cmd_end))
    app.add_handler(CommandHandler("check", cmd_check))
    app.add_error_handler(error_handler)

    if app.job_queue is None:
        logger.warning(
            "JobQueue not available. Periodic updates will not run. "
            "Install with: pip install \"python-telegram-bot[job-queue]\""
        )
    return app


def main() -> None:
    """Run the Telegram commentator bot."""
    if not config.telegram_bot_token:
        logger.error("Set TELEGRAM_BOT_TOKEN in .env to run the Telegram bot.")
        raise SystemExit(1)

    setup_logging()
    app = build_application(config.telegram_bot_token)
    logger.info("Crypto Commentator is LIVE! 🎙️ Send /start <address> to begin.")
    app.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
