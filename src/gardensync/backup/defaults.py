"""
Built-in defaults for the per-user config blobs.
"""

DEFAULT_PARENT_LOCATIONS = [
    "Mangarai",
    "Velliavilai Home",
    "Velliavilai Near Pond",
    "Palappallam",
]

DEFAULT_CHILD_LOCATIONS = [
    "North",
    "South",
    "East",
    "West",
    "North-East",
    "North-West",
    "South-East",
    "South-West",
    "Center",
    "Front",
    "Back",
]

PLANT_CATEGORIES = [
    "vegetable",
    "herb",
    "flower",
    "fruit_tree",
    "timber_tree",
    "coconut_tree",
    "shrub",
]

DEFAULT_PLANT_CATALOG = {
    "categories": {
        "vegetable": {
            "plants": [
                "Tomato (Thakkali)",
                "Brinjal (Kathirikai)",
                "Bhendi / Okra (Vendakkai)",
                "Chilli (Milagai)",
                "Cluster Beans (Kothavarangai)",
                "Broad Beans (Avarakkai)",
                "Drumstick (Murungakkai)",
                "Ridge Gourd (Peerkangai)",
                "Bitter Gourd (Pavakkai)",
                "Snake Gourd (Pudalangai)",
                "Bottle Gourd (Suraikkai)",
                "Pumpkin (Parangikkai)",
                "Ash Gourd (Poosanikai)",
                "Amaranth Greens (Arai Keerai)",
                "Spinach (Pasalai Keerai)",
                "Coriander Greens (Kothamalli)",
                "Fenugreek Greens (Vendhaya Keerai)",
                "Curry Leaf Seedling",
                "Banana Stem",
                "Banana Flower",
                "Tomato",
                "Carrot",
                "Lettuce",
                "Cabbage",
                "Broccoli",
                "Cucumber",
                "Pepper",
                "Eggplant",
                "Spinach",
                "Radish",
                "Potato",
                "Onion",
                "Garlic",
                "Beans",
                "Peas",
            ],
            "varieties": {
                "Tomato (Thakkali)": ["PKM 1", "CO 3", "Arka Rakshak", "Arka Vikas"],
                "Brinjal (Kathirikai)": ["CO 2", "Matti Gulla", "Long Green", "Round Purple"],
                "Bhendi / Okra (Vendakkai)": ["COBhH 1", "Arka Anamika", "Parbhani Kranti"],
                "Chilli (Milagai)": ["K1", "K2", "Byadgi", "Gundu Milagai"],
                "Drumstick (Murungakkai)": ["PKM 1", "PKM 2"],
            },
        },
        "herb": {
            "plants": [
                "Holy Basil (Thulasi)",
                "Indian Borage (Karpooravalli)",
                "Ajwain Leaf",
                "Betel Leaf (Vetrilai)",
                "Turmeric",
                "Ginger",
                "Basil",
                "Mint",
                "Coriander",
                "Parsley",
                "Rosemary",
                "Thyme",
                "Oregano",
                "Sage",
                "Dill",
                "Lemongrass",
                "Curry Leaf",
            ],
            "varieties": {
                "Holy Basil (Thulasi)": ["Rama Tulsi", "Krishna Tulsi"],
                "Turmeric": ["Erode Local", "Salem", "Pragati"],
                "Ginger": ["Rio-de-Janeiro", "Maran", "Nadia"],
            },
        },
        "flower": {
            "plants": [
                "Jasmine (Malli)",
                "Crossandra (Kanakambaram)",
                "Tuberose (Sampangi)",
                "Rose",
                "Sunflower",
                "Marigold",
                "Lily",
                "Tulip",
                "Jasmine",
                "Hibiscus",
                "Dahlia",
                "Chrysanthemum",
                "Orchid",
            ],
            "varieties": {
                "Jasmine (Malli)": ["Madurai Malli", "Gundu Malli", "Ramanathapuram Gundumalli"],
                "Crossandra (Kanakambaram)": ["Delhi Orange", "Lutea Yellow"],
            },
        },
        "fruit_tree": {
            "plants": [
                "Mango (Ma)",
                "Banana (Vazhai)",
                "Guava (Koyya)",
                "Lemon (Elumichai)",
                "Amla (Nellikai)",
                "Custard Apple (Seethapazham)",
                "Indian Gooseberry",
                "Mango",
                "Orange",
                "Banana",
                "Guava",
                "Papaya",
                "Lemon",
                "Pomegranate",
                "Fig",
                "Avocado",
                "Jackfruit",
                "Chikoo",
                "Water Apple",
                "Soursop",
                "Mangosteen",
                "Rambutan",
            ],
            "varieties": {
                "Mango (Ma)": ["Alphonso", "Banganapalli", "Imam Pasand", "Neelum"],
                "Banana (Vazhai)": ["Poovan", "Nendran", "Rasthali", "Robusta"],
                "Guava (Koyya)": ["Lucknow 49", "Arka Kiran", "Allahabad Safeda"],
                "Lemon (Elumichai)": ["PKM 1", "Assam Lemon"],
                "Amla (Nellikai)": ["NA-7", "Krishna", "Kanchan"],
            },
        },
        "timber_tree": {
            "plants": ["Teak", "Mahogany", "Rosewood", "Sandalwood", "Bamboo", "Wild Jack", "Neem"],
            "varieties": {},
        },
        "coconut_tree": {
            "plants": ["Dwarf Coconut", "Tall Coconut", "Hybrid Coconut", "King Coconut"],
            "varieties": {},
        },
        "shrub": {
            "plants": [
                "Ixora",
                "Henna (Maruthani)",
                "Hibiscus",
                "Bougainvillea",
                "Jasmine",
                "Azalea",
                "Gardenia",
                "Lavender",
                "Boxwood",
                "Holly",
            ],
            "varieties": {
                "Hibiscus": ["Red Single", "Yellow Double"],
                "Ixora": ["Red Dwarf", "Orange"],
            },
        },
    }
}

WATER_REQUIREMENTS = ("low", "medium", "high")
SUNLIGHT_LEVELS = ("full_sun", "partial_sun", "shade")
SOIL_TYPES = ("garden_soil", "potting_mix", "coco_peat", "custom")
FERTILISERS = ("compost", "vermicompost", "fish_emulsion", "seaweed", "neem_cake", "other")
GROWTH_STAGES = ("seedling", "vegetative", "flowering", "fruiting", "dormant", "mature")
