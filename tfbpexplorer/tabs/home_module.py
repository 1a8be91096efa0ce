from shiny import module, ui

from ..utils.source_name_lookup import get_source_name_dict


def _source_list(datatype: str) -> ui.Tag:
    return ui.tags.ul(
        *[
            ui.tags.li(f"{label} ", ui.tags.code(source_id))
            for source_id, label in get_source_name_dict(datatype).items()
        ]
    )


@module.ui
def home_ui():
    return ui.div(
        ui.h2("TF Binding and Perturbation Explorer"),
        ui.p(
            "Explore yeast transcription factor (TF) binding datasets alongside the "
            "gene expression changes measured after perturbing each TF."
        ),
        ui.h3("Tabs"),
        ui.tags.ul(
            ui.tags.li(
                ui.strong("Binding: "),
                "pairwise Pearson correlations between binding datasets, over the "
                "target genes each pair has in common.",
            ),
            ui.tags.li(
                ui.strong("Perturbation Response: "),
                "the same comparison for perturbation response datasets.",
            ),
            ui.tags.li(
                ui.strong("All Regulator Compare: "),
                "distributions of rank response, DTO and univariate summaries across "
                "every regulator, by binding and perturbation source.",
            ),
            ui.tags.li(
                ui.strong("Individual Regulator: "),
                "rank response curves for one TF, one line per binding replicate, "
                "against a random expectation and its 95% confidence band.",
            ),
        ),
        ui.h3("Data sources"),
        ui.layout_columns(
            ui.div(ui.h5("Binding"), _source_list("binding")),
            ui.div(ui.h5("Perturbation response"), _source_list("perturbation_response")),
        ),
        ui.p(
            "Loaded data is cached for a few minutes. Use a tab's Refresh button to "
            "bypass the cache.",
            class_="text-muted",
        ),
        class_="home-content p-4",
    )
