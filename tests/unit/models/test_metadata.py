# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Unit tests for action, function and option set metadata."""

import dataclasses
import unittest

from cds_webapi.core.errors import ConfigurationError
from cds_webapi.models.metadata import (
    ActionMetadata,
    FunctionMetadata,
    OptionSet,
    OptionSetEntry,
    ParameterMetadata,
)


class TestOperationMetadata(unittest.TestCase):
    def test_parameters_from_dicts(self):
        meta = ActionMetadata(
            "WinOpportunity",
            parameters=[
                {"Name": "Status", "Type": "Edm.Int32"},
                {"Name": "OpportunityClose", "Type": "mscrm.opportunityclose", "Nullable": True},
            ],
        )
        self.assertEqual(meta.parameter_names, ["Status", "OpportunityClose"])
        self.assertEqual(meta.required_parameter_names, ["Status"])
        self.assertEqual(meta.parameter_types, {"Status": "Edm.Int32", "OpportunityClose": "mscrm.opportunityclose"})
        self.assertIsInstance(meta.parameters, tuple)
        self.assertFalse(meta.is_bound)

    def test_bound_function(self):
        meta = FunctionMetadata(
            "GetQuote",
            parameters=[ParameterMetadata("Amount", "Edm.Decimal")],
            bound_parameter_type="mscrm.account",
            bound_prefix="Microsoft.Dynamics.CRM",
        )
        self.assertTrue(meta.is_bound)
        self.assertEqual(meta.bound_prefix, "Microsoft.Dynamics.CRM")

    def test_untyped_parameters_are_left_out_of_types(self):
        meta = FunctionMetadata("F", parameters=[ParameterMetadata("A"), ParameterMetadata("B", "Edm.String")])
        self.assertEqual(meta.parameter_types, {"B": "Edm.String"})

    def test_duplicate_parameter_names_raise(self):
        with self.assertRaises(ConfigurationError):
            ActionMetadata("A", parameters=[ParameterMetadata("X"), ParameterMetadata("X")])

    def test_name_required(self):
        with self.assertRaises(ConfigurationError):
            FunctionMetadata("")
        with self.assertRaises(ConfigurationError):
            ParameterMetadata(" ")


class TestOptionSet(unittest.TestCase):
    def setUp(self):
        self.optionset = OptionSet(
            "account",
            "industrycode",
            options=[OptionSetEntry("Accounting", 1), OptionSetEntry("Agriculture", 2)],
        )

    def test_lookups(self):
        self.assertEqual(self.optionset.label_for(2), "Agriculture")
        self.assertIsNone(self.optionset.label_for(99))
        self.assertEqual(self.optionset.value_for(" accounting "), 1)
        self.assertIsNone(self.optionset.value_for("Mining"))

    def test_iteration_keeps_server_order(self):
        self.assertEqual([o.value for o in self.optionset], [1, 2])
        self.assertEqual(len(self.optionset), 2)

    def test_options_are_immutable(self):
        self.assertIsInstance(self.optionset.options, tuple)
        with self.assertRaises(AttributeError):
            self.optionset.options.append(OptionSetEntry("Mining", 3))
        with self.assertRaises(dataclasses.FrozenInstanceError):
            self.optionset.options = ()

    def test_entry_to_dict(self):
        self.assertEqual(OptionSetEntry("Active", 0).to_dict(), {"label": "Active", "value": 0})


if __name__ == "__main__":
    unittest.main()
