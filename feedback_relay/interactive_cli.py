#!/usr/bin/env python3
"""Interactive CLI for the feedback relay.

This allows users to:
1. Import feedback from a CSV file, a GitHub repository or a subreddit
2. Run analysis with a live progress bar
3. Browse prioritized issues, themes and insights
4. Ask questions about the feedback without making HTTP requests
"""
import asyncio
import sys
from pathlib import Path
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress
from rich.table import Table
from rich import box
from rich.prompt import IntPrompt, Prompt

from database import (
    init_db, get_db_session, save_source, save_feedback_items, update_source_sync,
    get_unanalyzed_feedback, save_issues_batch, get_all_issues, get_priority_config,
    save_insights, get_insights
)
from schemas import ChatMessage, ImportResult
from ai_analyzer import AIAnalyzer
from sentiment_analyzer import SentimentAnalyzer
from cache import SummaryCache
from analysis import FeedbackAnalyzer
from assistant import answer_question
from insights import generate_insights, quick_summary
from sources import fetch_github_issues, fetch_reddit_posts, parse_csv_to_feedback, parse_repo_reference
from themes import analyze_themes


console = Console()

CLI_SESSION = "cli"

PRIORITY_STYLES = {
    "critical": "bold red",
    "high": "yellow",
    "medium": "cyan",
    "low": "dim",
}

MENU = {
    "1": "Import CSV file",
    "2": "Import GitHub issues",
    "3": "Import Reddit posts",
    "4": "Analyze new feedback",
    "5": "Show issues",
    "6": "Show themes",
    "7": "Show insights",
    "8": "Ask a question",
    "q": "Quit",
}


class InteractiveRelay:
    """Interactive feedback relay session."""

    def __init__(self, session_id: str = CLI_SESSION):
        """Initialize the system."""
        self.session_id = session_id
        self.ai_analyzer = AIAnalyzer()
        self.cache = SummaryCache()
        self.analyzer = FeedbackAnalyzer(self.ai_analyzer, SentimentAnalyzer(), self.cache)

    async def store_import(self, source_type: str, source_config: dict, result: ImportResult):
        """Persist a connector result and report what happened."""
        if result.error:
            console.print(f"[red]⚠️  {result.error}[/red]")
            return

        async with get_db_session() as db:
            source_id = await save_source(db, self.session_id, source_type, source_config)
            saved = await save_feedback_items(db, self.session_id, source_id, result.items)
            await update_source_sync(db, source_id, len(result.items))

        console.print(
            f"[green]✅ Imported {len(result.items)} items ({saved} new) from {source_type}[/green]"
        )

    async def import_csv(self):
        path = Path(Prompt.ask("CSV file path"))
        if not path.is_file():
            console.print(f"[red]⚠️  File not found: {path}[/red]")
            return

        try:
            content = path.read_text(encoding="utf-8-sig")
        except UnicodeDecodeError:
            console.print("[red]⚠️  CSV file must be UTF-8 encoded[/red]")
            return

        result = parse_csv_to_feedback(content)
        await self.store_import("csv", {"filename": path.name, "row_count": len(result.items)}, result)

    async def import_github(self):
        reference = parse_repo_reference(Prompt.ask("Repository (owner/repo or URL)"))
        if reference is None:
            console.print("[red]⚠️  Invalid repository reference[/red]")
            return

        owner, repo = reference
        limit = IntPrompt.ask("How many issues", default=20)
        with console.status(f"Fetching issues from {owner}/{repo}..."):
            result = await fetch_github_issues(owner, repo, limit)
        await self.store_import("github", {"owner": owner, "repo": repo, "fetch_limit": limit}, result)

    async def import_reddit(self):
        subreddit = Prompt.ask("Subreddit").strip().removeprefix("r/")
        query = Prompt.ask("Search query (blank for newest posts)", default="")
        limit = IntPrompt.ask("How many posts", default=20)
        with console.status(f"Fetching posts from r/{subreddit}..."):
            result = await fetch_reddit_posts(subreddit, query or None, limit)
        source_config = {"subreddit": subreddit, "search_query": query, "fetch_limit": limit}
        await self.store_import("reddit", source_config, result)

    async def analyze(self):
        """Analyze unanalyzed feedback with a progress bar."""
        async with get_db_session() as db:
            feedback = await get_unanalyzed_feedback(db, self.session_id)
            if not feedback:
                console.print("[yellow]Nothing new to analyze[/yellow]")
                return

            keyword_config = await get_priority_config(db, self.session_id)

            with Progress(console=console) as progress:
                task = progress.add_task("Analyzing feedback", total=len(feedback))

                def on_progress(completed: int, total: int):
                    progress.update(task, completed=completed)

                issues = await self.analyzer.analyze_batch(feedback, keyword_config, on_progress)

            saved = await save_issues_batch(db, issues)
            all_issues = await get_all_issues(db, self.session_id)
            await save_insights(db, self.session_id, generate_insights(all_issues))

        console.print(f"[green]✅ Analyzed {saved} feedback items[/green]")
        self.display_summary(all_issues)

        stats = self.cache.get_stats()
        console.print(
            f"\n[dim]Cache: {stats['hits']} hits, "
            f"{stats['misses']} misses, "
            f"{stats['size']} entries[/dim]"
        )

    def display_summary(self, issues):
        summary = quick_summary(issues)
        metrics = "  ".join(f"[bold]{m.label}:[/bold] {m.value}" for m in summary.metrics)
        console.print(Panel(
            f"[bold]{summary.headline}[/bold]\n\n{metrics}\n\n→ {summary.recommendation}",
            title="📊 Summary",
            border_style="bold blue",
            box=box.ROUNDED,
            padding=(1, 2)
        ))

    async def show_issues(self):
        async with get_db_session() as db:
            issues = await get_all_issues(db, self.session_id)

        if not issues:
            console.print("[yellow]No issues yet. Import and analyze feedback first.[/yellow]")
            return

        table = Table(
            title="📋 Issues",
            box=box.ROUNDED,
            show_header=True,
            header_style="bold magenta"
        )
        table.add_column("Priority", width=10)
        table.add_column("Title", style="green")
        table.add_column("Category", style="cyan")
        table.add_column("Sentiment")
        table.add_column("Reason", style="dim")

        for issue in issues:
            style = PRIORITY_STYLES.get(issue.priority, "")
            priority = issue.priority + (" *" if issue.priority_override else "")
            table.add_row(
                f"[{style}]{priority}[/{style}]",
                issue.title,
                issue.category,
                issue.sentiment_label,
                issue.priority_reason
            )

        console.print(table)

    async def show_themes(self):
        async with get_db_session() as db:
            issues = await get_all_issues(db, self.session_id)

        themes = await analyze_themes(issues, labeler=self.ai_analyzer)
        if not themes:
            console.print("[yellow]No themes yet[/yellow]")
            return

        table = Table(title="🧭 Themes", box=box.ROUNDED, header_style="bold magenta")
        table.add_column("Theme", style="green")
        table.add_column("Issues", justify="right")
        table.add_column("Priority")
        table.add_column("Sentiment")
        table.add_column("Description", style="dim")

        for theme in themes:
            style = PRIORITY_STYLES.get(theme.priority, "")
            table.add_row(
                theme.label,
                str(theme.issue_count),
                f"[{style}]{theme.priority}[/{style}]",
                theme.sentiment,
                theme.description
            )

        console.print(table)

    async def show_insights(self):
        async with get_db_session() as db:
            insights = await get_insights(db, self.session_id)

        if not insights:
            console.print("[yellow]No insights yet[/yellow]")
            return

        for insight in insights:
            console.print(Panel(
                f"{insight.description}\n\n[bold yellow]Action:[/bold yellow] {insight.action}",
                title=f"💡 {insight.title}",
                subtitle=f"impact {insight.impact} · effort {insight.effort}",
                border_style="red" if insight.impact == "high" else "blue",
                box=box.ROUNDED
            ))

    async def ask(self, history):
        question = Prompt.ask("Your question")
        if not question.strip():
            return

        async with get_db_session() as db:
            issues = await get_all_issues(db, self.session_id)

        with console.status("Thinking..."):
            answer = await answer_question(question, issues, history, ai=self.ai_analyzer)

        history.append(ChatMessage(role="user", content=question))
        history.append(ChatMessage(role="assistant", content=answer))
        console.print(Panel(answer, title="🤖 Relay", border_style="green", box=box.ROUNDED))

    def display_welcome(self):
        """Display welcome message."""
        ai_state = "[green]✓[/green]" if self.ai_analyzer.available else "[yellow]✗[/yellow]"
        welcome = f"""
[bold cyan]Feedback Relay[/bold cyan]
[dim]Interactive CLI Mode[/dim]

Import feedback, then analyze it for:
  • Priority (critical, high, medium, low) with a rationale
  • Category and one-line summary
  • Themes and actionable insights

Using:
  {ai_state} AI summaries, theme labels and chat
  [green]✓[/green] DistilBERT sentiment model
        """

        console.print(Panel(welcome, border_style="bold blue", box=box.DOUBLE, padding=(1, 2)))
        console.print()

    async def run_interactive(self):
        """Run the interactive CLI loop."""
        self.display_welcome()
        actions = {
            "1": self.import_csv,
            "2": self.import_github,
            "3": self.import_reddit,
            "4": self.analyze,
            "5": self.show_issues,
            "6": self.show_themes,
            "7": self.show_insights,
        }
        history = []

        while True:
            console.print()
            for key, label in MENU.items():
                console.print(f"  [bold]{key}[/bold]  {label}")
            console.print()

            choice = Prompt.ask("Choose", choices=list(MENU), default="5")

            if choice == "q":
                console.print("\n[cyan]Goodbye![/cyan]\n")
                break

            if choice == "8":
                await self.ask(history)
                continue

            await actions[choice]()


async def main():
    """Main entry point."""
    # Initialize database
    console.print("[cyan]Initializing database...[/cyan]")
    await init_db()

    system = InteractiveRelay()

    try:
        await system.run_interactive()
    except KeyboardInterrupt:
        console.print("\n\n[cyan] Goodbye![/cyan]\n")
        sys.exit(0)


if __name__ == "__main__":
    asyncio.run(main())
