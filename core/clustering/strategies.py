"""
Named classification strategies.

Two views of the same group agreements are computed side by side: the
statistical view (mean and spread of group scores) and the coalition view
(which groups line up with which). Neither replaces the other.
"""

import logging

from . import classifier, consensus

logger = logging.getLogger(__name__)


class ClassificationStrategy:
    """Base class: turns per-group agreements into a classification."""

    name = None

    def classify(self, statement_id, group_agreements):
        raise NotImplementedError

    def classify_all(self, agreements_by_statement):
        """
        Classify every statement that has at least one group agreement.

        Args:
            agreements_by_statement: dict {statement_id: [GroupAgreement]}

        Returns:
            list of StatementClassification in input order
        """
        return [
            self.classify(statement_id, group_agreements)
            for statement_id, group_agreements in agreements_by_statement.items()
            if group_agreements
        ]


class StatisticalStrategy(ClassificationStrategy):
    name = consensus.STRATEGY_NAME

    def classify(self, statement_id, group_agreements):
        return consensus.classify_statement(statement_id, group_agreements)


class CoalitionStrategy(ClassificationStrategy):
    name = classifier.STRATEGY_NAME

    def classify(self, statement_id, group_agreements):
        return classifier.classify_statement(statement_id, group_agreements)


STRATEGIES = {
    StatisticalStrategy.name: StatisticalStrategy,
    CoalitionStrategy.name: CoalitionStrategy,
}


def get_strategy(name):
    """
    Look up a strategy by name ('statistical' or 'coalition').

    Raises:
        KeyError: unknown strategy name
    """
    try:
        return STRATEGIES[name]()
    except KeyError:
        raise KeyError(
            f"Unknown classification strategy {name!r}; "
            f"expected one of {sorted(STRATEGIES)}"
        ) from None
