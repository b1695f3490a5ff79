#!/usr/bin/env python3
"""
SWG Combat Tools - Combat Log Analyzer

Parses a combat log, detects encounters and reports per-actor damage,
healing, ability breakdowns, defensive outcomes and player insights for the
whole log or for one time window. Results are written as CSV files, an
optional Excel workbook, a JSON payload and a markdown summary.
"""

import argparse
import logging
import os
from typing import Any, Dict, List, Optional

import openpyxl
import pandas as pd

from ..analysis.insights import build_player_insights
from ..analysis.segmenter import Segmenter, to_mmss
from ..analysis.window import reaggregate
from ..base import CombatTool, JSONTool
from ..log.elements import summarize_elements
from ..log.events import Segment
from ..log.parser import CombatLogParser, ParseOutcome

logger = logging.getLogger(__name__)


class CombatLogAnalyzer(JSONTool):
    """
    Combat log analysis tool.

    Keeps the outcome of the last parse so several windows can be analyzed
    without re-reading the log.
    """

    ROW_HEADERS = ["name", "damage", "healing", "avg_dps"]
    ABILITY_HEADERS = ["actor", "ability", "hits", "damage", "max", "avg"]
    DEFENDER_HEADERS = ["defender", "attempts", "landed", "hits", "glances", "dodges", "parries",
                        "blocks", "dodge_pct", "parry_pct", "glance_pct", "block_pct",
                        "avg_glance", "blocked_damage", "avg_evaded_pct"]
    SEGMENT_HEADERS = ["index", "label", "start", "end", "duration", "instance"]
    ELEMENT_HEADERS = ["actor", "ability", "element", "damage", "pct"]
    INSIGHT_HEADERS = ["player", "class", "grade", "score", "apm", "uptime_pct",
                       "peak_dps", "burst_windows", "burst_score"]

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the analyzer.

        Args:
            config: Configuration dictionary from Config class
        """
        super().__init__(config)
        self.initialize_directories()
        self.parser = CombatLogParser(self.config)
        self.outcome: Optional[ParseOutcome] = None
        self.segments: List[Segment] = []

    def parse_log_file(self, log_file: str, collect_unparsed: bool = False) -> ParseOutcome:
        """
        Parse a combat log and detect its encounters.

        Args:
            log_file: Path to the combat log
            collect_unparsed: Sample unrecognized lines for the debug output

        Returns:
            The parse outcome (also kept on the analyzer)
        """
        text = self.read_text(log_file)
        logger.info(f"Parsing combat log: {log_file}")

        def progress(done: int, total: int):
            logger.debug(f"Parsed {done}/{total} lines")

        self.outcome = self.parser.parse_text(text, collect_unparsed=collect_unparsed, progress=progress)
        folded = self.outcome.folded()
        self.segments = Segmenter.from_config(self.config).derive(folded.timeline(), folded.store.damage)
        return self.outcome

    def window_for_segment(self, index: int) -> tuple:
        """(start, end) of the 1-based encounter number."""
        if not 1 <= index <= len(self.segments):
            raise ValueError(f"Encounter {index} does not exist ({len(self.segments)} detected)")
        segment = self.segments[index - 1]
        return segment.start, segment.end

    def analyze(self, start: Optional[int] = None, end: Optional[int] = None) -> Dict[str, Any]:
        """
        Aggregate the parsed log over a window.

        Args:
            start: First second (default 0)
            end: Last second, inclusive (default the log duration)

        Returns:
            Payload dict with 'segments' and 'insights' added
        """
        if self.outcome is None:
            raise RuntimeError("No combat log parsed yet")

        aggregate = reaggregate(self.outcome.store, self.outcome.canon, start, end)
        payload = aggregate.to_payload(self.outcome.summary, self.outcome.collect_unparsed, self.outcome.canon)
        payload['segments'] = [segment.to_dict() for segment in self.segments]
        payload['insights'] = build_player_insights(aggregate, self.config)
        return payload

    # ------------------------------------------------------------------
    # Report tables
    # ------------------------------------------------------------------

    @staticmethod
    def ability_rows(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        rows = []
        for actor, abilities in payload['per_ability'].items():
            for ability, stats in abilities.items():
                rows.append({
                    'actor': actor,
                    'ability': ability,
                    'hits': stats['hits'],
                    'damage': stats['damage'],
                    'max': stats['max'],
                    'avg': round(stats['damage'] / stats['hits'], 1) if stats['hits'] else 0,
                })
        rows.sort(key=lambda r: (r['actor'], -r['damage'], r['ability']))
        return rows

    @staticmethod
    def defender_rows(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [{'defender': name, **stats} for name, stats in payload['defenders'].items()]

    def segment_rows(self) -> List[Dict[str, Any]]:
        return [{'index': index, **segment.to_dict()} for index, segment in enumerate(self.segments, 1)]

    @staticmethod
    def insight_rows(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        rows = []
        for player, data in payload['insights'].items():
            role = data.get('role', {})
            rows.append({
                'player': player,
                'class': data.get('class') or '',
                'grade': role.get('grade', ''),
                'score': role.get('score', 0),
                'apm': data['apm'],
                'uptime_pct': data['activity']['uptime_pct'],
                'peak_dps': data['peak']['dps'],
                'burst_windows': data['burst']['windows'],
                'burst_score': data['burst']['score'],
            })
        return rows

    def report_tables(self, payload: Dict[str, Any]) -> Dict[str, tuple]:
        """Report name to (rows, headers) for every exported table."""
        return {
            'damage': (payload['rows'], self.ROW_HEADERS),
            'abilities': (self.ability_rows(payload), self.ABILITY_HEADERS),
            'defenders': (self.defender_rows(payload), self.DEFENDER_HEADERS),
            'encounters': (self.segment_rows(), self.SEGMENT_HEADERS),
            'elements': (summarize_elements(payload['elements']), self.ELEMENT_HEADERS),
            'insights': (self.insight_rows(payload), self.INSIGHT_HEADERS),
        }

    # ------------------------------------------------------------------
    # Exports
    # ------------------------------------------------------------------

    def export_to_csv(self, payload: Dict[str, Any], output_prefix: str = "combat") -> Dict[str, str]:
        """
        Write one CSV file per report table.

        Returns:
            Table name to written file path
        """
        timestamp = self.get_timestamp_str("%Y%m%d_%H%M%S")
        written = {}
        for name, (rows, headers) in self.report_tables(payload).items():
            written[name] = self.write_csv(rows, f"{output_prefix}_{name}_{timestamp}.csv", headers)
        return written

    def export_to_excel(self, payload: Dict[str, Any], output_prefix: str = "combat") -> str:
        """
        Write every report table as a sheet of one workbook.

        Returns:
            Path to the workbook
        """
        timestamp = self.get_timestamp_str("%Y%m%d_%H%M%S")
        excel_path = self._output_path(f"{output_prefix}_report_{timestamp}.xlsx")
        os.makedirs(os.path.dirname(excel_path), exist_ok=True)

        with pd.ExcelWriter(excel_path, engine='openpyxl') as writer:
            for name, (rows, headers) in self.report_tables(payload).items():
                df = pd.DataFrame(rows, columns=headers)
                df.to_excel(writer, sheet_name=name, index=False)
                worksheet = writer.sheets[name]

                for idx, column in enumerate(df.columns, 1):
                    letter = openpyxl.utils.get_column_letter(idx)
                    width = max([len(str(column))] + [len(str(value)) for value in df[column]])
                    worksheet.column_dimensions[letter].width = min(60, width + 2)
                    if pd.api.types.is_numeric_dtype(df[column]):
                        for cell in worksheet[letter][1:]:  # Skip header row
                            cell.number_format = '0.##' if pd.api.types.is_float_dtype(df[column]) else '0'
                worksheet.freeze_panes = 'A2'

        logger.info(f"Excel report written to {excel_path}")
        return excel_path

    def write_markdown_summary(self, payload: Dict[str, Any], log_file: str,
                               output_prefix: str = "combat") -> str:
        """Write a short markdown report of the analyzed window."""
        timestamp = self.get_timestamp_str("%Y%m%d_%H%M%S")
        md_path = self._output_path(f"{output_prefix}_summary_{timestamp}.md")
        os.makedirs(os.path.dirname(md_path), exist_ok=True)

        window = payload['window']
        debug = payload['debug']
        md_lines = []
        md_lines.append(f"**Combat Log Analysis Summary**\n")
        md_lines.append(f"## Overview")
        md_lines.append(f"- Log File: {log_file}")
        md_lines.append(f"- Analysis Time: {self.get_timestamp_str()}")
        md_lines.append(f"- Window: {to_mmss(window['start'])} to {to_mmss(window['end'])}")
        md_lines.append(f"- Lines: {debug['total_lines']} ({debug['parsed']} parsed, "
                        f"{debug['duplicates_dropped']} duplicates dropped)")

        if payload['segments']:
            md_lines.append(f"\n## Encounters")
            for index, segment in enumerate(payload['segments'], 1):
                md_lines.append(f"{index}. {segment['label']}")

        md_lines.append(f"\n## Damage")
        for row in payload['rows'][:10]:
            md_lines.append(f"* {row['name']}: {row['damage']} damage, {row['healing']} healing, "
                            f"{row['avg_dps']} dps")

        if payload['insights']:
            md_lines.append(f"\n## Players")
            for player, data in payload['insights'].items():
                role = data.get('role', {})
                profession = data.get('class') or 'Unknown'
                md_lines.append(f"* {player} ({profession}): grade {role.get('grade', '-')}, "
                                f"peak {data['peak']['dps']} dps, {data['apm']} APM, "
                                f"{data['activity']['uptime_pct']}% uptime")

        deaths = payload['death_events']
        if deaths:
            md_lines.append(f"\n## Deaths")
            for death in deaths:
                killer = f" (killed by {death['killer']})" if death.get('killer') else ""
                md_lines.append(f"* {to_mmss(death['t'])}: {death['name']}{killer}")

        with open(md_path, 'w', encoding='utf-8') as f:
            for line in md_lines:
                f.write(line + '\n')

        logger.info(f"Markdown summary written to {md_path}")
        return md_path

    def run(self, log_file: str, start: Optional[int] = None, end: Optional[int] = None,
            segment: Optional[int] = None, collect_unparsed: bool = False, export_csv: bool = True,
            export_excel: bool = False, export_json: bool = False,
            output_prefix: str = "combat") -> Dict[str, Any]:
        """
        Parse a log, analyze one window and write the reports.

        Args:
            log_file: Path to the combat log
            start: First second of the window
            end: Last second of the window
            segment: 1-based encounter number; overrides start and end
            collect_unparsed: Sample unrecognized lines
            export_csv: Write CSV tables
            export_excel: Write an Excel workbook
            export_json: Write the full payload as JSON
            output_prefix: Prefix for output file names

        Returns:
            Dict with success flag, the payload and the written files
        """
        self.parse_log_file(log_file, collect_unparsed=collect_unparsed)
        if segment is not None:
            start, end = self.window_for_segment(segment)
            logger.info(f"Analyzing encounter {segment}: {self.segments[segment - 1].label}")

        payload = self.analyze(start, end)

        files: Dict[str, Any] = {}
        if export_csv:
            files['csv'] = self.export_to_csv(payload, output_prefix)
        if export_excel:
            files['excel'] = self.export_to_excel(payload, output_prefix)
        if export_json:
            timestamp = self.get_timestamp_str("%Y%m%d_%H%M%S")
            files['json'] = self.write_json(payload, f"{output_prefix}_payload_{timestamp}.json")
        files['markdown'] = self.write_markdown_summary(payload, log_file, output_prefix)

        return {'success': True, 'payload': payload, 'files': files}


def main():
    """
    Main entry point for the combat log analyzer command line tool.
    """
    parser = argparse.ArgumentParser(
        description="Analyze a combat log: damage, healing, abilities, defense and encounters.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s --log-file logs/combat.txt
    %(prog)s --log-file logs/combat.txt --segment 2 --excel
    %(prog)s --log-file logs/combat.txt --start 120 --end 300 --collect-unparsed

Configuration:
    - general.output_path: Directory for report files
    - segments.idle_gap: Quiet seconds that end an encounter
    - parser.max_hit: Largest believable single player hit
    - canon.aliases: Extra name aliases
        """
    )
    parser.add_argument("--log-file", required=True, help="Path to the combat log file.")
    parser.add_argument("--idle-gap", type=int, help="Quiet seconds that end an encounter (overrides config).")
    parser.add_argument("--segment", type=int, help="Analyze only this encounter (1-based).")
    parser.add_argument("--start", type=int, help="First second of the analysis window.")
    parser.add_argument("--end", type=int, help="Last second of the analysis window (inclusive).")
    parser.add_argument("--collect-unparsed", action="store_true",
                        help="Include samples of unrecognized lines in the JSON output.")
    parser.add_argument("--no-csv", action="store_true", help="Skip CSV export.")
    parser.add_argument("--excel", action="store_true", help="Also write an Excel workbook.")
    parser.add_argument("--json", action="store_true", help="Also write the full payload as JSON.")
    parser.add_argument("--output-prefix", default="combat", help="Prefix for output file names (default: combat).")

    CombatTool.add_standard_arguments(parser)
    args = parser.parse_args()

    try:
        config = CombatLogAnalyzer.load_config(args.profile)
        if args.idle_gap is not None:
            config.setdefault('segments', {})['idle_gap'] = args.idle_gap

        analyzer = CombatLogAnalyzer(config)
        result = analyzer.run(
            args.log_file,
            start=args.start,
            end=args.end,
            segment=args.segment,
            collect_unparsed=args.collect_unparsed,
            export_csv=not args.no_csv,
            export_excel=args.excel,
            export_json=args.json or args.collect_unparsed,
            output_prefix=args.output_prefix,
        )

        for row in result['payload']['rows'][:10]:
            print(f"{row['name']:<30} {row['damage']:>10} dmg {row['healing']:>10} heal {row['avg_dps']:>10} dps")
        print(f"\nMarkdown summary exported to: {result['files']['markdown']}")

        return 0 if result["success"] else 1

    except Exception as e:
        logger.error(f"Error: {e}")
        if args.console:
            raise
        return 1


if __name__ == "__main__":
    exit(main())
