"""
Terminal output formatter for CLI.

Handles all display logic - no business logic, just presentation.
"""


def print_report_summary(result: dict) -> None:
    """
    Print a human-readable summary of an audit run to terminal.

    Shows overall statistics and the pages that need prerendering.

    Args:
        result: Dictionary returned by PrerenderAuditRunner.run
    """
    print("\n" + "=" * 80)
    print("PRERENDER CONTENT GAIN REPORT")
    print("=" * 80)

    if result.get("status") == "ERROR":
        print(f"\n✗ Audit failed: {result.get('error')}\n")
        return

    audit = result["auditResult"]
    findings = audit["results"]
    failed = [f for f in findings if "scrapeError" in f]

    print(f"\nURLs Checked:          {audit['totalUrlsChecked']}")
    print(f"URLs Needing Prerender: {audit['urlsNeedingPrerender']}")
    print(f"URLs Not Compared:     {len(failed)}")

    if audit["scrapeForbidden"]:
        print("\n✗ Scraping was forbidden (HTTP 403). No pages could be compared.\n")
        return

    needing = [f for f in findings if f["needsPrerender"]]

    print(f"\n{'=' * 80}")
    print(f"Pages Needing Prerender: {len(needing)} / {audit['totalUrlsChecked']} URLs")
    print(f"{'=' * 80}\n")

    if not needing:
        print("✓ No pages need prerendering.")
        print("  Server-side HTML carries the content of every compared page.\n")
    else:
        for i, finding in enumerate(needing, 1):
            print(f"[{i}] {finding['url']}")
            print(f"    Organic Traffic: {finding['organicTraffic']}")
            print(f"    Word Count:")
            print(f"      Server-side: {finding['wordCountBefore']}")
            print(f"      Client-side: {finding['wordCountAfter']}")
            print(f"      Gain Ratio:  {finding['contentGainRatio']}")
            print("\n" + "-" * 80 + "\n")

    if failed:
        print(f"\n{'=' * 80}")
        print(f"URLS NOT COMPARED ({len(failed)})")
        print(f"{'=' * 80}\n")

        for i, finding in enumerate(failed, 1):
            print(f"[{i}] {finding['url']}")
            _print_error(finding)
            print("-" * 80 + "\n")


def _print_error(finding: dict) -> None:
    """
    Print the scrape error of a finding in a readable format.

    Args:
        finding: Finding dictionary carrying ``scrapeError``
    """
    error = finding["scrapeError"]
    if "statusCode" in error:
        print(f"  Scrape Status: {error['statusCode']}")
    if error.get("message"):
        print(f"  Error: {error['message']}")


def print_guidance_result(result) -> None:
    """Print the outcome of a handled guidance callback."""
    if result.ok:
        print(f"✓ Guidance applied to {result.updated} suggestion(s)")
    else:
        print(f"✗ Guidance rejected ({result.status}): {result.message}")
