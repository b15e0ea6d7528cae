"""
Threat Generation Prompt Module

This module provides the fixed prompt texts used by the generation pipeline:
- The STRIDE analyst system prompt with the expected JSON response shape
- Section headers for tickets and uploaded files
- The closing analysis instruction
"""

from typing import Sequence

from constants import (
    MAX_THREATS,
    MitigationEffort,
    MitigationPriority,
    Severity,
    StrideCategory,
)


def _get_stride_categories_string() -> str:
    """Helper function to get STRIDE categories as a formatted string."""
    return "|".join([category.value for category in StrideCategory])


def _get_severity_levels_string() -> str:
    return "|".join([severity.value for severity in Severity])


def system_prompt() -> str:
    """System prompt instructing the model to produce a STRIDE threat model as JSON."""
    return f"""You are a senior security architect performing threat modeling using the STRIDE methodology.
Analyze the provided system information and generate a comprehensive threat model.

For each threat identified:
1. Classify using STRIDE categories (Spoofing, Tampering, Repudiation, Information Disclosure, Denial of Service, Elevation of Privilege)
2. Assess severity ({", ".join(severity.value for severity in Severity)})
3. Rate likelihood (1-5) and impact (1-5)
4. Calculate risk score (likelihood x impact)
5. Identify affected components
6. Describe attack vectors
7. Propose concrete mitigations with priority and effort estimates

Focus on the TOP {MAX_THREATS} most critical threats. Be specific and actionable.

Respond with valid JSON only, no markdown code blocks, matching this structure:
{{
  "threats": [
    {{
      "title": "Threat Title",
      "description": "Detailed description of the threat",
      "category": "{_get_stride_categories_string()}",
      "severity": "{_get_severity_levels_string()}",
      "likelihood": 1-5,
      "impact": 1-5,
      "riskScore": 1-25,
      "affectedComponents": ["component1", "component2"],
      "attackVector": "Description of how attack is carried out",
      "mitigations": [
        {{
          "description": "Specific mitigation action",
          "priority": "{"|".join(p.value for p in MitigationPriority)}",
          "effort": "{"|".join(e.value for e in MitigationEffort)}",
          "status": "proposed"
        }}
      ]
    }}
  ],
  "summary": "Executive summary of the threat landscape",
  "recommendations": ["Top recommendation 1", "Top recommendation 2"]
}}"""


def tickets_header(ticket_count: int) -> str:
    return (
        f"\n## Issue Tracker Tickets ({ticket_count} tickets)\n"
        "The following tickets provide context for this threat model:\n"
    )


def files_manifest(entries: Sequence[str]) -> str:
    """Manifest of uploaded files, one "- name (tag)" line per entry."""
    listing = "\n".join(entries)
    return (
        f"\n## Uploaded Context Files ({len(entries)} files)\n"
        f"The following files have been uploaded for analysis:\n{listing}\n\n"
        "Please analyze these files to understand the system architecture, "
        "data flows, and potential security concerns:\n"
    )


def file_label(file_name: str) -> str:
    return f"\n[Analyzing: {file_name}]\n"


def inline_file(file_name: str, file_type: str, text: str) -> str:
    return (
        f"\n--- File: {file_name} ({file_type}) ---\n"
        f"{text}\n"
        f"--- End of {file_name} ---\n"
    )


def analysis_instruction() -> str:
    return (
        "\n\nBased on all the information provided above (system description, "
        "tickets, questionnaire responses, and uploaded documents/diagrams), "
        "please analyze this system and generate a threat model with the top "
        f"{MAX_THREATS} most critical security threats."
    )
