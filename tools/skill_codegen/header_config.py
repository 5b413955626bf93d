"""
Generated-file header configuration - single source of truth

Every artifact produced by the skill code generator starts with the header
returned by get_generated_file_header(). Edit the text here, not in the
templates.

Usage:
    from skill_codegen.header_config import get_generated_file_header
    print(get_generated_file_header('alarm_skill.scxml'))
"""

GENERATOR_CONFIG = {
    # Project Information
    'project': {
        'name': 'SCXML Skill Code Generator',
        'package': 'skill-codegen',
    },

    # Generated Code License Text
    'generated_code_header': {
        'spdx_license': 'MIT',
        'copyright_holder': '[Author of input SCXML file]',
        'notice': 'Do not edit: this file is overwritten on every generation run.',
    },
}


def get_generator_line():
    """Get formatted generator identification line"""
    return f"Generated by {GENERATOR_CONFIG['project']['name']}"


def get_generated_file_header(source_name, comment='//'):
    """
    Get SPDX header for a generated C++ file

    Args:
        source_name: File name of the behavior description (no directory, so
            output does not depend on where the generator runs)
        comment: Line comment marker of the target language

    Returns:
        Header text without trailing newline
    """
    header = GENERATOR_CONFIG['generated_code_header']
    lines = [
        f"SPDX-License-Identifier: {header['spdx_license']}",
        f"SPDX-FileCopyrightText: {header['copyright_holder']}",
        "",
        get_generator_line(),
        f"From: {source_name or 'unknown.scxml'}",
        "",
        header['notice'],
    ]
    return '\n'.join(f"{comment} {line}".rstrip() for line in lines)
