# type: ignore
''' Source line grammar

Every alternative parses a whole (upper-cased) line and yields a single
(handler-name, tokens) pair; the pass processors dispatch on the name.
'''

import pyparsing as pp

from hvm.common.ops import MNEMONICS, Pseudo


def g_action(expr, handler):
    return (expr + pp.StringEnd()).set_parse_action(lambda r: [(handler, list(r))])


token = pp.Word(pp.printables)
rest = pp.Regex('.+')
comment = pp.Suppress(pp.Literal('//') + pp.rest_of_line)

symbol = token
value = token       # hex, checked by the pass that uses it

mnemonic = pp.Word(pp.printables).add_condition(lambda r: r[0] in MNEMONICS)

# Unindented: label declarations
constant_decl = g_action(symbol + pp.Suppress(pp.Keyword(Pseudo.CONSTANT.value)) + value, 'on_constant')
code_label = g_action(symbol, 'on_label')
bad_label = g_action(symbol + rest, 'on_bad_label')

label_line = constant_decl | bad_label | code_label

# Indented: pseudo-ops and instructions
origin = g_action(pp.Suppress(pp.Literal(Pseudo.ORIGIN.value)) + value, 'on_origin')
end = g_action(pp.Suppress(pp.Literal(Pseudo.END.value) + pp.Optional(rest)), 'on_end')
instruction = g_action(mnemonic + value, 'on_instruction')
no_operand = g_action(mnemonic, 'on_missing_operand')
unknown = g_action(rest, 'on_unknown')

statement_line = origin | end | instruction | no_operand | unknown

label_line.ignore(comment)
statement_line.ignore(comment)
